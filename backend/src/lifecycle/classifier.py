"""
Round classification.

Derives a status for every round of a competition relative to "now" and
decides which rounds are open for picks.

Deadline convention: a deadline equal to "now" has passed. Every caller that
compares a deadline (classifier, pick lock, pick save) goes through
``is_deadline_passed`` so the boundary is the same everywhere.
"""

import logging
import re
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from lifecycle.models import RoundStatus

logger = logging.getLogger(__name__)

DEFAULT_WINDOW_SIZE = 4
DEFAULT_SELECTION_HORIZON = timedelta(weeks=5)

# Trailing "Z" or +HH:MM / -HHMM offset
_UTC_OFFSET = re.compile(r"(Z|[+-]\d{2}:?\d{2})$")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    Parse a Postgres/ISO timestamp into an aware UTC datetime.

    Accepts datetimes, "Z"-suffixed strings and the legacy "...s" suffix some
    round deadlines were stored with. Naive values are assumed to be UTC.
    Returns None for missing or unparseable values.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        s = str(value).strip()
        if not s:
            return None
        if s.endswith("s"):
            s = s[:-1]
            if not _UTC_OFFSET.search(s):
                s += "Z"
        try:
            parsed = datetime.fromisoformat(s.replace("Z", "+00:00"))
        except ValueError:
            logger.warning("Unparseable timestamp", extra={"value": s})
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def is_deadline_passed(deadline: Any, now: Optional[datetime] = None) -> bool:
    """True when the deadline is at or before now. A missing deadline never passes."""
    deadline_dt = parse_timestamp(deadline)
    if deadline_dt is None:
        return False
    return deadline_dt <= (now or utc_now())


def is_within_selection_horizon(
    deadline: Any,
    now: Optional[datetime] = None,
    horizon: timedelta = DEFAULT_SELECTION_HORIZON,
) -> bool:
    """True when the deadline is still open and no further away than the horizon."""
    deadline_dt = parse_timestamp(deadline)
    if deadline_dt is None:
        return False
    now = now or utc_now()
    return now < deadline_dt <= now + horizon


def _sort_key(round_row: Dict[str, Any]):
    return round_row.get("round_number") or 0


def find_current_round_index(
    rounds: List[Dict[str, Any]],
    now: Optional[datetime] = None,
) -> int:
    """
    Index of the first round (in the given order) whose deadline is still open.

    Returns -1 when every deadline has passed or the list is empty.
    """
    now = now or utc_now()
    for idx, round_row in enumerate(rounds):
        deadline = parse_timestamp(round_row.get("deadline_date"))
        if deadline is not None and deadline > now:
            return idx
    return -1


def find_current_round(
    rounds: List[Dict[str, Any]],
    now: Optional[datetime] = None,
) -> Optional[Dict[str, Any]]:
    """The CURRENT round of a competition, or None if all deadlines have passed."""
    ordered = sorted(rounds, key=_sort_key)
    idx = find_current_round_index(ordered, now)
    return ordered[idx] if idx != -1 else None


def classify_round_at(
    index: int,
    current_index: int,
    is_past: bool,
    window_size: int,
) -> RoundStatus:
    """Status of the round at ``index`` given the anchor position."""
    if is_past or current_index == -1 or index < current_index:
        return RoundStatus.PAST
    if index == current_index:
        return RoundStatus.CURRENT
    if index <= current_index + window_size:
        return RoundStatus.UPCOMING
    return RoundStatus.FUTURE


def classify_rounds(
    rounds: List[Dict[str, Any]],
    now: Optional[datetime] = None,
    window_size: int = DEFAULT_WINDOW_SIZE,
) -> List[Dict[str, Any]]:
    """
    Annotate rounds with status, is_selectable and is_past.

    Rounds are ordered by round_number. The first round with an open deadline
    is CURRENT, the next ``window_size`` rounds are UPCOMING and anything
    after that is FUTURE. Rounds whose deadline has passed are PAST wherever
    they sit. The input rows are not modified.

    Args:
        rounds: Round rows with round_number and deadline_date
        now: Reference time (defaults to the current UTC time)
        window_size: Number of UPCOMING rounds after CURRENT

    Returns:
        New list of round dicts, sorted by round_number, with "status"
        (RoundStatus), "is_selectable" and "is_past" added
    """
    now = now or utc_now()
    ordered = sorted(rounds, key=_sort_key)
    current_index = find_current_round_index(ordered, now)

    classified = []
    for idx, round_row in enumerate(ordered):
        is_past = is_deadline_passed(round_row.get("deadline_date"), now)
        status = classify_round_at(idx, current_index, is_past, window_size)
        classified.append({
            **round_row,
            "status": status,
            "is_selectable": status.is_selectable,
            "is_past": is_past,
        })
    return classified


def apply_selection_horizon(
    classified_rounds: List[Dict[str, Any]],
    now: Optional[datetime] = None,
    horizon: timedelta = DEFAULT_SELECTION_HORIZON,
) -> List[Dict[str, Any]]:
    """
    Add "is_open_for_picks": selectable by the window AND within the horizon.

    This is the stricter gate used by pick pages; it never widens what
    ``classify_rounds`` allows.
    """
    now = now or utc_now()
    return [
        {
            **round_row,
            "is_open_for_picks": bool(round_row.get("is_selectable"))
            and is_within_selection_horizon(round_row.get("deadline_date"), now, horizon),
        }
        for round_row in classified_rounds
    ]


def serialize_round(round_row: Dict[str, Any]) -> Dict[str, Any]:
    """JSON-safe copy of a classified round (RoundStatus -> its value)."""
    status = round_row.get("status")
    if isinstance(status, RoundStatus):
        return {**round_row, "status": status.value}
    return dict(round_row)
