"""Command line interface for the catalog ingestion pipeline."""
