"""Ingestion orchestrator: clone, walk, extract, embed and compute ownership."""
