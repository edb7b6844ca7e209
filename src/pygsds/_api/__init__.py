"""Authority endpoint helpers (internal)."""
