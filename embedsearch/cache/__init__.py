"""Optional Redis-backed embedding cache."""
