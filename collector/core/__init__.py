"""Extraction engine: document model, normalisation, field resolution."""
