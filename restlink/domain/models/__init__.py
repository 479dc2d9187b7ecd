"""Domain models (value objects and plain dataclasses)."""
