"""Core types shared across the ingestion pipeline."""
