"""Client-side argument checks shared by the endpoint wrappers.

Rejected arguments produce a VALIDATION_ERROR Result without touching the
network.
"""

from typing import Any, Optional

from restlink.domain.models.result import ErrorKind, Result


def require_text(value: Any, field_name: str) -> Optional[Result]:
    """Returns a VALIDATION_ERROR Result if `value` is not a non-blank string."""
    if not isinstance(value, str) or not value.strip():
        return Result.failure(ErrorKind.VALIDATION_ERROR, f"'{field_name}' must be a non-empty string")
    return None


def require_number(value: Any, field_name: str) -> Optional[Result]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return Result.failure(ErrorKind.VALIDATION_ERROR, f"'{field_name}' must be a number")
    return None


def require_positive_int(value: Any, field_name: str) -> Optional[Result]:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        return Result.failure(ErrorKind.VALIDATION_ERROR, f"'{field_name}' must be a positive integer")
    return None
