"""Domain Layer: value objects, ports and events shared by every other layer.

Contains no I/O. Core and infrastructure code depend on these definitions,
never the other way round.
"""
