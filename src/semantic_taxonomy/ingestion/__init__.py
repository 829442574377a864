"""Batch question ingestion: analysis, resolution actions and commit."""
