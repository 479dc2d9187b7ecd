"""Infrastructure Layer: Contains concrete implementations and adapters.

Connects the core to the outside world (HTTP, timers, disk, configuration
sources, logging) by implementing the interfaces defined in the domain layer.
"""
