"""Command line interface for autocommit."""
