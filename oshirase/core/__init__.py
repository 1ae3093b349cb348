"""Core domain models for Oshirase."""
