"""
Ingestion Package
=================

Sources, matching, transform, the pipeline coordinator and the job worker.
"""
