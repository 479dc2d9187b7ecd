"""Token store adapters."""
