"""Credential bundle representing an authenticated session."""

from dataclasses import asdict, dataclass
from typing import Any, Dict, Mapping


@dataclass(frozen=True)
class CredentialBundle:
    """user id plus the access/refresh token pair.

    Frozen: a refresh produces a new bundle rather than mutating the shared one.
    """

    user_id: str = ""
    access_token: str = ""
    refresh_token: str = ""

    @classmethod
    def empty(cls) -> "CredentialBundle":
        return cls()

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "CredentialBundle":
        return cls(
            user_id=str(raw.get("user_id") or ""),
            access_token=str(raw.get("access_token") or ""),
            refresh_token=str(raw.get("refresh_token") or ""),
        )

    def to_dict(self) -> Dict[str, str]:
        return asdict(self)

    def has_tokens(self) -> bool:
        return bool(self.access_token) and bool(self.refresh_token)

    def __repr__(self) -> str:
        # Never leak tokens into logs
        return (
            f"CredentialBundle(user_id={self.user_id!r}, "
            f"access_token={'***' if self.access_token else ''!r}, "
            f"refresh_token={'***' if self.refresh_token else ''!r})"
        )
