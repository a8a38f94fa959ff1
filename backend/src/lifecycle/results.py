"""
Result resolution.

Applies finished fixtures to picks: the losing side of a fixture (both sides
on a draw) has its live picks in the matching round eliminated, then the
fixture is marked processed so it is never applied twice.

A fixture only touches competitions whose (league_id, season) matches its
gameweek; the round is the one whose round_number equals the gameweek number.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from database.supabase_client import SupabaseClient
from lifecycle.models import LIVE_PICK_STATUSES
from services.rounds import resolve_league

logger = logging.getLogger(__name__)


class FixtureOutcome:
    """How a single fixture was handled in a run."""
    PROCESSED = "processed"  # Picks updated (possibly none) and fixture marked
    SKIPPED = "skipped"  # Left unmarked, picked up again by the next run
    FAILED = "failed"  # Database error, left unmarked


@dataclass
class FixtureResult:
    fixture_id: str
    outcome: str
    reason: Optional[str] = None
    eliminated: int = 0
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "fixture_id": self.fixture_id,
            "outcome": self.outcome,
            "reason": self.reason,
            "eliminated": self.eliminated,
            "error": self.error,
        }


@dataclass
class ResultRunSummary:
    """Counts and per-fixture outcomes of one resolver run."""
    processed: int = 0
    skipped: int = 0
    failed: int = 0
    eliminated: int = 0
    fixtures: List[FixtureResult] = field(default_factory=list)

    def record(self, result: FixtureResult):
        self.fixtures.append(result)
        if result.outcome == FixtureOutcome.PROCESSED:
            self.processed += 1
            self.eliminated += result.eliminated
        elif result.outcome == FixtureOutcome.SKIPPED:
            self.skipped += 1
        else:
            self.failed += 1

    def to_dict(self) -> Dict[str, Any]:
        return {
            "processed": self.processed,
            "skipped": self.skipped,
            "failed": self.failed,
            "eliminated": self.eliminated,
            "fixtures": [f.to_dict() for f in self.fixtures],
        }


def losing_sides(home_score: int, away_score: int, home_team: str, away_team: str) -> List[str]:
    """
    Teams whose pickers are eliminated by a final score.

    A draw eliminates both sides.
    """
    losing = []
    if home_score <= away_score:
        losing.append(home_team)
    if home_score >= away_score:
        losing.append(away_team)
    return losing


class ResultResolver:
    """Eliminates picks from finished, unprocessed fixtures."""

    def __init__(self, db_client: SupabaseClient):
        self.db_client = db_client

    def _target_competitions(self, competition_id: Optional[str]) -> List[Dict[str, Any]]:
        if competition_id:
            competition = self.db_client.get_competition(competition_id)
            return [competition] if competition else []
        return self.db_client.get_active_competitions()

    def process_results(self, competition_id: Optional[str] = None) -> ResultRunSummary:
        """
        Process every finished fixture not yet applied.

        Args:
            competition_id: Only resolve rounds of this competition; all active
                competitions when omitted

        Returns:
            ResultRunSummary with per-fixture outcomes
        """
        summary = ResultRunSummary()

        fixtures = self.db_client.get_unprocessed_finished_fixtures()
        if not fixtures:
            logger.info("No finished fixtures awaiting results")
            return summary

        competitions = self._target_competitions(competition_id)
        if not competitions:
            logger.warning("No active competitions, skipping result processing", extra={
                "fixture_count": len(fixtures)
            })
            for fixture in fixtures:
                summary.record(FixtureResult(fixture["id"], FixtureOutcome.SKIPPED, "no_competition"))
            return summary

        # Loaded once per run; external ids compared as strings
        team_uuids = {
            str(t["external_api_id"]): t["id"]
            for t in self.db_client.get_teams()
            if t.get("external_api_id") is not None
        }
        gameweeks: Dict[str, Optional[Dict[str, Any]]] = {}

        logger.info("Processing fixture results", extra={
            "fixture_count": len(fixtures),
            "competition_count": len(competitions)
        })

        for fixture in fixtures:
            try:
                result = self._process_fixture(fixture, competitions, team_uuids, gameweeks)
            except Exception as e:
                logger.error("Failed to process fixture", extra={
                    "fixture_id": fixture.get("id"),
                    "error": str(e)
                }, exc_info=True)
                result = FixtureResult(fixture.get("id"), FixtureOutcome.FAILED, error=str(e))
            summary.record(result)

        logger.info("Fixture results processed", extra={
            "processed": summary.processed,
            "skipped": summary.skipped,
            "failed": summary.failed,
            "eliminated": summary.eliminated
        })
        return summary

    def _gameweek(self, gameweek_id: str, cache: Dict[str, Optional[Dict[str, Any]]]) -> Optional[Dict[str, Any]]:
        if gameweek_id not in cache:
            cache[gameweek_id] = self.db_client.get_gameweek(gameweek_id)
        return cache[gameweek_id]

    def _process_fixture(
        self,
        fixture: Dict[str, Any],
        competitions: List[Dict[str, Any]],
        team_uuids: Dict[str, str],
        gameweeks: Dict[str, Optional[Dict[str, Any]]]
    ) -> FixtureResult:
        fixture_id = fixture["id"]
        home_score = fixture.get("home_score")
        away_score = fixture.get("away_score")

        if home_score is None or away_score is None:
            logger.warning("Finished fixture has no score, skipping", extra={"fixture_id": fixture_id})
            return FixtureResult(fixture_id, FixtureOutcome.SKIPPED, "missing_score")

        gameweek_id = fixture.get("gameweek_id")
        if not gameweek_id:
            logger.warning("Fixture has no gameweek, skipping", extra={"fixture_id": fixture_id})
            return FixtureResult(fixture_id, FixtureOutcome.SKIPPED, "no_gameweek")

        gameweek = self._gameweek(gameweek_id, gameweeks)
        if gameweek is None or gameweek.get("gameweek_number") is None:
            logger.warning("Gameweek not found for fixture, skipping", extra={
                "fixture_id": fixture_id,
                "gameweek_id": gameweek_id
            })
            return FixtureResult(fixture_id, FixtureOutcome.SKIPPED, "gameweek_not_found")

        gameweek_number = gameweek["gameweek_number"]
        league = (int(gameweek["league_id"]), int(gameweek["season"]))
        rounds = []
        for competition in competitions:
            if resolve_league(competition) != league:
                continue
            round_row = self.db_client.get_round_by_number(competition["id"], gameweek_number)
            if round_row is not None:
                rounds.append(round_row)
        if not rounds:
            logger.warning("No round matches fixture gameweek, skipping", extra={
                "fixture_id": fixture_id,
                "league_id": league[0],
                "season": league[1],
                "gameweek_number": gameweek_number
            })
            return FixtureResult(fixture_id, FixtureOutcome.SKIPPED, "no_round")

        home_uuid = team_uuids.get(str(fixture.get("home_team_id")))
        away_uuid = team_uuids.get(str(fixture.get("away_team_id")))

        eliminated = 0
        reason = None
        if home_uuid is None or away_uuid is None:
            # Nothing can be eliminated reliably; marked so it is not retried forever
            logger.warning("Team mapping missing for fixture, marking processed", extra={
                "fixture_id": fixture_id,
                "home_team_id": fixture.get("home_team_id"),
                "away_team_id": fixture.get("away_team_id")
            })
            reason = "team_mapping_missing"
        else:
            losing = losing_sides(home_score, away_score, home_uuid, away_uuid)
            live_statuses = sorted(s.value for s in LIVE_PICK_STATUSES)
            for round_row in rounds:
                updated = self.db_client.eliminate_picks(round_row["id"], losing, live_statuses)
                eliminated += len(updated)
            logger.info("Applied fixture result", extra={
                "fixture_id": fixture_id,
                "home_score": home_score,
                "away_score": away_score,
                "eliminated": eliminated
            })

        self.db_client.mark_fixture_processed(fixture_id)
        return FixtureResult(fixture_id, FixtureOutcome.PROCESSED, reason, eliminated)
