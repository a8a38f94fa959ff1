"""
Gameweek status updater.

Recomputes is_current / is_next / is_previous / finished for every gameweek
of a (league_id, season) from deadlines alone, and writes all four flags back
for every row.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple

from config import Config
from database.supabase_client import SupabaseClient
from lifecycle.classifier import parse_timestamp, utc_now

logger = logging.getLogger(__name__)

DEFAULT_SEASON_COMPLETE_AFTER = timedelta(days=7)

_FAR_FUTURE = datetime.max.replace(tzinfo=timezone.utc)


@dataclass
class GameweekFlags:
    """Flag assignment for one league season."""
    flags: Dict[str, Dict[str, bool]] = field(default_factory=dict)
    current: Optional[Dict[str, Any]] = None
    next: Optional[Dict[str, Any]] = None
    previous: Optional[Dict[str, Any]] = None
    season_complete: bool = False


def compute_gameweek_flags(
    gameweeks: List[Dict[str, Any]],
    now: Optional[datetime] = None,
    season_complete_after: timedelta = DEFAULT_SEASON_COMPLETE_AFTER
) -> GameweekFlags:
    """
    Work out the four status flags for every gameweek.

    Current is the first gameweek (by deadline) whose deadline is at or after
    now. When every deadline has passed the latest gameweek stays current
    until ``season_complete_after`` has elapsed; after that nothing is current
    and every gameweek is finished. The gameweek before current is previous;
    it and everything before it are finished. The one after current is next.

    Args:
        gameweeks: Gameweek rows with id and deadline_time
        now: Reference time (defaults to now)
        season_complete_after: Grace period after the last deadline

    Returns:
        GameweekFlags with a flag dict for every gameweek id
    """
    now = now or utc_now()
    ordered = sorted(
        gameweeks,
        key=lambda gw: parse_timestamp(gw.get("deadline_time")) or _FAR_FUTURE
    )
    result = GameweekFlags(flags={
        gw["id"]: {"is_current": False, "is_next": False, "is_previous": False, "finished": False}
        for gw in ordered
    })
    if not ordered:
        return result

    deadlines = [parse_timestamp(gw.get("deadline_time")) for gw in ordered]
    current_idx = next(
        (i for i, d in enumerate(deadlines) if d is not None and d >= now),
        -1
    )
    if current_idx == -1:
        dated = [i for i, d in enumerate(deadlines) if d is not None]
        if not dated:
            return result
        if now - deadlines[dated[-1]] > season_complete_after:
            result.season_complete = True
            for flags in result.flags.values():
                flags["finished"] = True
            return result
        current_idx = dated[-1]

    result.current = ordered[current_idx]
    result.flags[result.current["id"]]["is_current"] = True

    if current_idx > 0:
        result.previous = ordered[current_idx - 1]
        result.flags[result.previous["id"]]["is_previous"] = True
        for gw in ordered[:current_idx]:
            result.flags[gw["id"]]["finished"] = True

    if current_idx < len(ordered) - 1:
        result.next = ordered[current_idx + 1]
        result.flags[result.next["id"]]["is_next"] = True

    return result


def _number(gameweek: Optional[Dict[str, Any]]) -> Optional[int]:
    return gameweek.get("gameweek_number") if gameweek else None


class GameweekStatusUpdater:
    """Writes computed gameweek flags for the tracked leagues."""

    def __init__(self, db_client: SupabaseClient, config: Config):
        self.db_client = db_client
        self.config = config

    @property
    def season_complete_after(self) -> timedelta:
        return timedelta(days=self.config.season_complete_after_days)

    def update(self, league_id: int, season: int, now: Optional[datetime] = None) -> Dict[str, Any]:
        """
        Recompute and write flags for one league season.

        Returns:
            Report with success/failure counts and current/next/previous numbers
        """
        report: Dict[str, Any] = {"league": league_id, "season": season}
        try:
            gameweeks = self.db_client.get_gameweeks_for_season(league_id, season)
        except Exception as e:
            logger.error("Error fetching gameweeks", extra={
                "league_id": league_id,
                "season": season,
                "error": str(e)
            }, exc_info=True)
            report.update({"success": False, "error": str(e)})
            return report

        if not gameweeks:
            logger.info("No gameweeks found to update", extra={"league_id": league_id, "season": season})
            report.update({"success": True, "message": "No gameweeks found to update", "total": 0})
            return report

        plan = compute_gameweek_flags(gameweeks, now, self.season_complete_after)

        success_count = 0
        failures = []
        for gameweek_id, flags in plan.flags.items():
            try:
                self.db_client.update_gameweek_flags(gameweek_id, flags)
                success_count += 1
            except Exception as e:
                logger.error("Error updating gameweek", extra={
                    "gameweek_id": gameweek_id,
                    "error": str(e)
                })
                failures.append({"id": gameweek_id, "error": str(e)})

        report.update({
            "success": not failures,
            "total": len(plan.flags),
            "updated": success_count,
            "failed": len(failures),
            "errors": failures,
            "current_gameweek": _number(plan.current),
            "next_gameweek": _number(plan.next),
            "previous_gameweek": _number(plan.previous),
            "season_complete": plan.season_complete,
        })
        logger.info("Gameweek statuses updated", extra={
            "league_id": league_id,
            "season": season,
            "updated": success_count,
            "failed": len(failures),
            "current_gameweek": report["current_gameweek"]
        })
        return report

    def update_all(self, leagues: Optional[List[Tuple[int, int]]] = None, now: Optional[datetime] = None) -> List[Dict[str, Any]]:
        """Update every tracked (league_id, season); one report per league season."""
        leagues = leagues if leagues is not None else self.config.tracked_leagues
        return [self.update(league_id, season, now) for league_id, season in leagues]
