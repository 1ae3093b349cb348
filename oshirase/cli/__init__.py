"""Command line interface for Oshirase."""
