"""restlink: resilient client-side networking core for REST game backends."""

__version__ = "0.1.0"
