"""Core Layer: the request execution pipeline and the client facade."""
