"""Time source shared by services.

Services accept a ``Clock`` so batch runs can be driven with a fixed time.
"""

from collections.abc import Callable
from datetime import UTC, datetime

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(UTC)


def ensure_aware(moment: datetime) -> bool:
    """Check that ``moment`` carries a timezone."""
    return moment.tzinfo is not None and moment.utcoffset() is not None


def to_utc(moment: datetime | None) -> datetime | None:
    """Convert an aware ``moment`` to UTC; naive values and None pass through."""
    if moment is None or not ensure_aware(moment):
        return moment
    return moment.astimezone(UTC)


__all__ = ["Clock", "ensure_aware", "to_utc", "utc_now"]
