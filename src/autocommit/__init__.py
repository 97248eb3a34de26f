"""Autocommit - scheduled commits of uncommitted changes."""

__version__ = "0.1.0"
