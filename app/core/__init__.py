"""Core application primitives (settings, database, security, errors)."""
