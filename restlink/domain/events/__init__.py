"""Domain Event definitions.

Represents significant occurrences in the request pipeline that observers
(logging, metrics, UI) can react to without the pipeline depending on them.
"""
