"""
Paste record and lookup result types shared by every store backend.
"""
from dataclasses import dataclass
from typing import Any, Optional, Union

from pastestore.clock import MAX_INSTANT_MS
from pastestore.exceptions import ValidationError


@dataclass(frozen=True)
class PasteRecord:
    """A persisted paste. Only ``remaining_views`` ever changes after creation."""

    id: str
    content: str
    created_at: int
    expires_at: Optional[int] = None
    remaining_views: Optional[int] = None

    def is_visible(self, now: int) -> bool:
        """False once the paste has expired or run out of views."""
        if self.expires_at is not None and now >= self.expires_at:
            return False
        if self.remaining_views is not None and self.remaining_views <= 0:
            return False
        return True


@dataclass(frozen=True)
class Available:
    """A successful lookup."""

    content: str
    remaining_views: Optional[int]
    expires_at: Optional[int]

    available = True


class Unavailable:
    """A failed lookup. Unknown, expired and exhausted pastes all map here."""

    available = False

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "Unavailable()"


UNAVAILABLE = Unavailable()

LookupResult = Union[Available, Unavailable]


def _check_positive_int(field: str, value: Any) -> Optional[int]:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise ValidationError(field, f"{field} must be an integer >= 1 if present")
    return value


def validate_new_paste(
    content: Any, ttl_seconds: Any = None, max_views: Any = None, now: Optional[int] = None
) -> None:
    """
    Validate creation input.

    When ``now`` is given, the resulting expiry must also be renderable (before year 10000).

    Raises:
        ValidationError: naming the first offending field
    """
    if not isinstance(content, str) or not content.strip():
        raise ValidationError("content", "content is required and must be a non-empty string")
    ttl_seconds = _check_positive_int("ttl_seconds", ttl_seconds)
    _check_positive_int("max_views", max_views)
    if ttl_seconds is not None and now is not None and now + ttl_seconds * 1000 > MAX_INSTANT_MS:
        raise ValidationError("ttl_seconds", "ttl_seconds is too large: the paste would expire after year 9999")
