"""Port definitions for the durable activity buffer."""

from typing import Collection, Protocol, Sequence

from .models import Activity


class ActivityBuffer(Protocol):
    """Buffer interface shared by intake and forwarding.

    Implementations must make every operation individually atomic; callers on
    different threads use the same instance without extra locking.
    """

    def append(self, activity: Activity) -> int:
        """Persist ``activity`` as unconsumed and return its assigned id."""

    def unconsumed(self, limit: int) -> Sequence[Activity]:
        """Return up to ``limit`` unconsumed activities, oldest start first."""

    def mark_consumed(self, ids: Collection[int]) -> None:
        """Flag exactly ``ids`` as consumed, all or nothing."""
