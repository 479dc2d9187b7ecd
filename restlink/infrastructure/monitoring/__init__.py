"""Logging setup and event dispatching."""
