"""
Round service.

Round retrieval with fixtures (through the gameweek mapping), paginated
listing, current-round lookup and classified round lists. Raw rows are cached
through the injected RoundCache; statuses are recomputed on every call so a
cached entry never carries a stale status.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple

from config import Config
from database.supabase_client import SupabaseClient
from lifecycle.classifier import (
    apply_selection_horizon,
    classify_rounds,
    find_current_round,
    is_deadline_passed,
    parse_timestamp,
    utc_now,
)
from lifecycle.models import RoundStatus
from services.cache import NullRoundCache, RoundCache
from services.errors import ErrorCode, RoundError, ServiceResponse, wrap_unexpected

logger = logging.getLogger(__name__)

# Football API league ids by competition title keyword
LEAGUE_IDS_BY_TITLE = {
    "Premier League": 39,
}

ROUND_KEY = "round:"
ROUNDS_LIST_KEY = "rounds_list:"
COMPETITION_ROUNDS_KEY = "competition_rounds:"


def resolve_league(competition: Dict[str, Any]) -> Optional[Tuple[int, int]]:
    """
    Map a competition to the (league_id, season) its gameweeks are stored under.

    Only football competitions whose title names a known league map; the
    season is the calendar year of the competition start date.
    """
    if (competition.get("sport") or "").lower() != "football":
        return None
    title = competition.get("title") or ""
    league_id = next(
        (lid for name, lid in LEAGUE_IDS_BY_TITLE.items() if name in title),
        None,
    )
    if league_id is None:
        return None
    start = parse_timestamp(competition.get("start_date"))
    if start is None:
        logger.warning("Could not determine season for competition", extra={
            "competition_id": competition.get("id"),
            "competition_title": title
        })
        return None
    return league_id, start.year


class RoundService:
    """Round lookups for the API and the pick service."""

    def __init__(
        self,
        db_client: SupabaseClient,
        config: Config,
        cache: Optional[RoundCache] = None
    ):
        self.db_client = db_client
        self.config = config
        self.cache = cache if cache is not None else NullRoundCache()

    @property
    def selection_horizon(self) -> timedelta:
        return timedelta(weeks=self.config.selection_horizon_weeks)

    def get_round_gameweek(
        self,
        round_row: Dict[str, Any],
        competition: Optional[Dict[str, Any]] = None
    ) -> Optional[Dict[str, Any]]:
        """Gameweek a round maps to, or None when the competition has no league mapping."""
        if competition is None:
            competition = self.db_client.get_competition(round_row["competition_id"])
            if competition is None:
                return None
        league = resolve_league(competition)
        if league is None:
            return None
        league_id, season = league
        gameweek = self.db_client.find_gameweek(league_id, season, round_row["round_number"])
        if gameweek is None:
            logger.warning("No gameweek found for round", extra={
                "league_id": league_id,
                "season": season,
                "round_number": round_row["round_number"]
            })
        return gameweek

    def _load_competition_rounds(self, competition_id: str, force_refresh: bool = False) -> List[Dict[str, Any]]:
        key = f"{COMPETITION_ROUNDS_KEY}{competition_id}"
        if not force_refresh:
            cached = self.cache.get(key)
            if cached is not None:
                return cached
        rounds = self.db_client.get_competition_rounds(competition_id)
        self.cache.set(key, rounds)
        return rounds

    def _load_round_bundle(self, round_id: str) -> Optional[Dict[str, Any]]:
        """Round row + competition + gameweek + fixtures, uncached. Raises RoundError."""
        round_row = self.db_client.get_round(round_id)
        if round_row is None:
            return None

        competition = self.db_client.get_competition(round_row["competition_id"])
        if competition is None:
            # A round without its competition is a data integrity problem
            raise RoundError(
                f"Competition details not found for round {round_id}.",
                ErrorCode.DATABASE_ERROR
            )

        gameweek = None
        fixtures: List[Dict[str, Any]] = []
        try:
            gameweek = self.get_round_gameweek(round_row, competition)
            if gameweek is not None:
                fixtures = self.db_client.get_fixtures_for_gameweek(gameweek["id"])
        except Exception as e:
            # Fixtures are optional for a round; serve the round without them
            logger.error("Error fetching fixtures for round", extra={
                "round_id": round_id,
                "error": str(e)
            })
            fixtures = []

        return {
            **round_row,
            "competition": competition,
            "gameweek": gameweek,
            "fixtures": fixtures,
        }

    def find_round_with_fixtures(
        self,
        round_id: str,
        force_refresh: bool = False,
        now: Optional[datetime] = None
    ) -> ServiceResponse[Dict[str, Any]]:
        """
        Round with its competition, gameweek, fixtures and classified status.

        Args:
            round_id: Round id
            force_refresh: Skip and replace the cached entry
            now: Reference time for the status (defaults to now)
        """
        if not round_id:
            return ServiceResponse.failure(RoundError.validation("Round ID is required"))

        key = f"{ROUND_KEY}{round_id}"
        try:
            bundle = None if force_refresh else self.cache.get(key)
            if bundle is None:
                bundle = self._load_round_bundle(round_id)
                if bundle is None:
                    return ServiceResponse.failure(
                        RoundError.not_found(f"Round with ID {round_id} not found.")
                    )
                self.cache.set(key, bundle)

            rounds = self._load_competition_rounds(bundle["competition_id"], force_refresh)
            classified = {
                r["id"]: r for r in classify_rounds(rounds, now, self.config.round_window_size)
            }
            match = classified.get(round_id)
            if match is not None:
                status = match["status"]
                is_selectable = match["is_selectable"]
            else:
                # Round missing from its competition listing: fall back to its own deadline
                passed = is_deadline_passed(bundle.get("deadline_date"), now)
                status = RoundStatus.PAST if passed else RoundStatus.CURRENT
                is_selectable = not passed

            return ServiceResponse.success({
                **bundle,
                "status": status,
                "is_selectable": is_selectable,
                "is_past": is_deadline_passed(bundle.get("deadline_date"), now),
            })
        except RoundError as e:
            return ServiceResponse.failure(e)
        except Exception as e:
            return ServiceResponse.failure(
                wrap_unexpected(RoundError, "Unexpected round retrieval error", e, round_id=round_id)
            )

    def list_rounds(
        self,
        competition_id: Optional[str] = None,
        page: int = 1,
        page_size: int = 10
    ) -> ServiceResponse[Dict[str, Any]]:
        """Paginated rounds ordered by round_number."""
        if page < 1 or page_size < 1:
            return ServiceResponse.failure(
                RoundError.validation("page and page_size must be positive")
            )
        key = f"{ROUNDS_LIST_KEY}{competition_id or 'all'}_{page}_{page_size}"
        cached = self.cache.get(key)
        if cached is not None:
            return ServiceResponse.success(cached)
        try:
            rows, total = self.db_client.get_rounds_page(
                competition_id, offset=(page - 1) * page_size, limit=page_size
            )
            result = {"rounds": rows, "total": total, "page": page, "page_size": page_size}
            self.cache.set(key, result)
            return ServiceResponse.success(result)
        except Exception as e:
            return ServiceResponse.failure(
                wrap_unexpected(RoundError, "Error listing rounds", e, competition_id=competition_id)
            )

    def get_current_active_round(
        self,
        competition_id: str,
        now: Optional[datetime] = None
    ) -> ServiceResponse[Dict[str, Any]]:
        """
        The CURRENT round of a competition, or its most recent round once
        every deadline has passed.
        """
        if not competition_id:
            return ServiceResponse.failure(RoundError.validation("Competition ID is required"))
        try:
            rounds = self._load_competition_rounds(competition_id)
            if not rounds:
                return ServiceResponse.failure(
                    RoundError.not_found("No rounds found for competition")
                )
            current = find_current_round(rounds, now)
            if current is not None:
                return ServiceResponse.success({**current, "status": RoundStatus.CURRENT})

            latest = max(
                rounds,
                key=lambda r: parse_timestamp(r.get("deadline_date")) or datetime.min.replace(tzinfo=timezone.utc)
            )
            return ServiceResponse.success({**latest, "status": RoundStatus.PAST})
        except Exception as e:
            return ServiceResponse.failure(
                wrap_unexpected(RoundError, "Error finding active round", e, competition_id=competition_id)
            )

    def get_classified_rounds(
        self,
        competition_id: str,
        now: Optional[datetime] = None,
        force_refresh: bool = False
    ) -> ServiceResponse[List[Dict[str, Any]]]:
        """Competition rounds with status, is_selectable and is_open_for_picks."""
        if not competition_id:
            return ServiceResponse.failure(RoundError.validation("Competition ID is required"))
        try:
            now = now or utc_now()
            rounds = self._load_competition_rounds(competition_id, force_refresh)
            classified = classify_rounds(rounds, now, self.config.round_window_size)
            return ServiceResponse.success(
                apply_selection_horizon(classified, now, self.selection_horizon)
            )
        except Exception as e:
            return ServiceResponse.failure(
                wrap_unexpected(RoundError, "Error classifying rounds", e, competition_id=competition_id)
            )

    def clear_cache(self, round_id: Optional[str] = None):
        """Clear one round (plus every list that may contain it) or the whole cache."""
        if round_id:
            self.cache.invalidate(key=f"{ROUND_KEY}{round_id}")
            for prefix in (ROUNDS_LIST_KEY, COMPETITION_ROUNDS_KEY):
                self.cache.invalidate(prefix=prefix)
        else:
            self.cache.invalidate()

        logger.info("Round service cache cleared", extra={"round_id": round_id})
