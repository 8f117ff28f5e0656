"""Task model, normalization, persistence adapters, sync and import."""
