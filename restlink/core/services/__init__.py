"""Endpoint wrappers: one call into ApiClient per backend operation."""
