"""Catalog services: audit log, admin overrides and mappings, provenance, offer summaries."""
