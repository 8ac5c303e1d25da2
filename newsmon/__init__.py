"""News monitor: ingestion, deduplication and entity linking."""
