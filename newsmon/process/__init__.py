"""Normalization, classification, deduplication and entity resolution."""
