"""Commit pipeline and schedule registry."""
