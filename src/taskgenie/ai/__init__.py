"""AI task pre-fill."""
