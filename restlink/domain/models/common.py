"""Defines common Value Objects used across the client.

These are plain strings at runtime; NewType only adds semantic clarity.
"""

from typing import NewType

# === Request Context ===
RequestId = NewType("RequestId", str)          # Short hex id used to correlate log lines
EndpointName = NewType("EndpointName", str)    # Key into the endpoint template table, e.g. 'login'
PathTemplate = NewType("PathTemplate", str)    # e.g. '/storage/{key}'

# === Auth Context ===
UserId = NewType("UserId", str)
