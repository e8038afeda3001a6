"""Observability helpers (metrics as structured logs)."""
