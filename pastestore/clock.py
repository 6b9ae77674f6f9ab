"""
Time authority: the single source of "now" for expiry decisions.
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional, Union

logger = logging.getLogger(__name__)

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
# Latest instant to_iso can render (9999-12-31T23:59:59.999Z).
MAX_INSTANT_MS = (datetime.max.replace(tzinfo=timezone.utc) - EPOCH) // timedelta(milliseconds=1)


def wall_clock_ms() -> int:
    """Current UTC time in milliseconds since the epoch."""
    return int(datetime.now(timezone.utc).timestamp() * 1000)


def to_iso(instant_ms: Optional[int]) -> Optional[str]:
    """Render epoch milliseconds as an ISO 8601 UTC string, e.g. 1970-01-01T00:01:01.000Z."""
    if instant_ms is None:
        return None
    dt = EPOCH + timedelta(milliseconds=instant_ms)
    return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")


class TimeAuthority:
    """Resolves the current instant for a request.

    In test mode a caller may pass an explicit override (epoch milliseconds,
    typically the ``x-test-now-ms`` header). A well-formed override is returned
    verbatim for that single call; anything else falls back to the wall clock.
    """

    def __init__(self, test_mode: bool = False, clock: Callable[[], int] = wall_clock_ms):
        self.test_mode = test_mode
        self._clock = clock

    def wall(self) -> int:
        """True current instant, ignoring any override."""
        return self._clock()

    def resolve(self, override: Optional[Union[str, int]] = None) -> int:
        """
        Resolve "now" for one request.

        Args:
            override: Optional override instant in milliseconds (TEST_MODE only)

        Returns:
            Epoch milliseconds
        """
        if self.test_mode and override is not None:
            try:
                if isinstance(override, bool):
                    raise TypeError("boolean is not an instant")
                return int(override)
            except (ValueError, TypeError) as e:
                logger.warning(f"Invalid time override {override!r}: {e}")

        return self._clock()
