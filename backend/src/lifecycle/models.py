"""
Status enumerations for rounds, picks and fixtures.

Database rows carry these as plain strings; the enums are the closed set of
values the lifecycle code understands.
"""

from enum import Enum


class RoundStatus(Enum):
    """Round status relative to "now"."""
    PAST = "PAST"  # Deadline has passed
    CURRENT = "CURRENT"  # First round with an open deadline
    UPCOMING = "UPCOMING"  # Inside the sliding window after CURRENT
    FUTURE = "FUTURE"  # Beyond the sliding window

    @property
    def is_selectable(self) -> bool:
        return self in (RoundStatus.CURRENT, RoundStatus.UPCOMING)


class PickStatus(Enum):
    """Pick status as stored in picks.status."""
    PENDING = "pending"  # Editable until the round deadline
    LOCKED = "locked"  # Deadline passed, awaiting results
    ACTIVE = "active"  # Live pick still in the game
    WIN = "win"
    LOSS = "loss"
    DRAW = "draw"
    VOID = "void"
    ELIMINATED = "eliminated"

    @property
    def is_live(self) -> bool:
        """Picks the result resolver may still eliminate."""
        return self in LIVE_PICK_STATUSES


LIVE_PICK_STATUSES = frozenset([PickStatus.ACTIVE, PickStatus.LOCKED])


class FixtureStatus(Enum):
    """Fixture status codes from the football data provider that we act on."""
    FULL_TIME = "FT"
