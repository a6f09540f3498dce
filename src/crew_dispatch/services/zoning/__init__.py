"""Zone affinity helpers."""
