"""
Supabase client for database operations.

One method per query, each selecting only what its callers need. Services
never build PostgREST queries themselves.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Tuple

from supabase import create_client, Client

from config import Config

logger = logging.getLogger(__name__)


def _first(rows: Optional[List[Dict[str, Any]]]) -> Optional[Dict[str, Any]]:
    return rows[0] if rows else None


class SupabaseClient:
    """Client for interacting with the Supabase database."""

    def __init__(self, config: Config, client: Optional[Client] = None):
        self.config = config
        self.client: Optional[Client] = client
        if self.client is None:
            self._initialize_client()

    def _initialize_client(self):
        """Initialize Supabase client."""
        if not self.config.supabase_url or not self.config.supabase_key:
            raise ValueError("Supabase URL and key are required")

        # Jobs need the service key to update other users' picks; the API can run on the anon key
        key = self.config.supabase_service_key or self.config.supabase_key

        self.client = create_client(
            self.config.supabase_url,
            key
        )

        logger.info("Initialized Supabase client", extra={
            "url": self.config.supabase_url,
            "using_service_key": bool(self.config.supabase_service_key)
        })

    # Auth

    def get_user_id_for_token(self, access_token: str) -> Optional[str]:
        """Resolve a Supabase Auth access token to its user id (None if invalid)."""
        response = self.client.auth.get_user(access_token)
        user = getattr(response, "user", None) if response else None
        return getattr(user, "id", None) if user else None

    # Competitions

    def get_competition(self, competition_id: str) -> Optional[Dict[str, Any]]:
        result = self.client.table("competitions").select("*").eq(
            "id", competition_id
        ).limit(1).execute()
        return _first(result.data)

    def get_active_competitions(self) -> List[Dict[str, Any]]:
        result = self.client.table("competitions").select("*").eq(
            "status", "active"
        ).execute()
        return result.data or []

    # Rounds

    def get_round(self, round_id: str) -> Optional[Dict[str, Any]]:
        result = self.client.table("rounds").select("*").eq(
            "id", round_id
        ).limit(1).execute()
        return _first(result.data)

    def get_competition_rounds(self, competition_id: str) -> List[Dict[str, Any]]:
        """All rounds of a competition ordered by round_number."""
        result = self.client.table("rounds").select(
            "id, competition_id, round_number, deadline_date"
        ).eq("competition_id", competition_id).order("round_number").execute()
        return result.data or []

    def get_rounds_for_competitions(self, competition_ids: List[str]) -> List[Dict[str, Any]]:
        if not competition_ids:
            return []
        result = self.client.table("rounds").select("*").in_(
            "competition_id", competition_ids
        ).order("round_number").execute()
        return result.data or []

    def get_rounds_page(
        self,
        competition_id: Optional[str] = None,
        offset: int = 0,
        limit: int = 10
    ) -> Tuple[List[Dict[str, Any]], int]:
        """
        One page of rounds ordered by round_number.

        Returns:
            (rows, total count across all pages)
        """
        query = self.client.table("rounds").select("*", count="exact")
        if competition_id:
            query = query.eq("competition_id", competition_id)
        result = query.order("round_number").range(offset, offset + limit - 1).execute()
        return result.data or [], result.count or 0

    def get_round_by_number(
        self,
        competition_id: str,
        round_number: int
    ) -> Optional[Dict[str, Any]]:
        result = self.client.table("rounds").select("id, competition_id, round_number, deadline_date").eq(
            "competition_id", competition_id
        ).eq("round_number", round_number).limit(1).execute()
        return _first(result.data)

    # Gameweeks

    def get_gameweek(self, gameweek_id: str) -> Optional[Dict[str, Any]]:
        result = self.client.table("gameweeks").select("*").eq(
            "id", gameweek_id
        ).limit(1).execute()
        return _first(result.data)

    def find_gameweek(
        self,
        league_id: int,
        season: int,
        gameweek_number: int
    ) -> Optional[Dict[str, Any]]:
        result = self.client.table("gameweeks").select("*").eq(
            "league_id", league_id
        ).eq("season", season).eq("gameweek_number", gameweek_number).limit(1).execute()
        return _first(result.data)

    def get_gameweeks_for_season(self, league_id: int, season: int) -> List[Dict[str, Any]]:
        result = self.client.table("gameweeks").select("*").eq(
            "league_id", league_id
        ).eq("season", season).order("deadline_time").execute()
        return result.data or []

    def update_gameweek_flags(self, gameweek_id: str, flags: Dict[str, bool]):
        """Overwrite is_current/is_next/is_previous/finished for one gameweek."""
        payload = {
            "is_current": bool(flags.get("is_current")),
            "is_next": bool(flags.get("is_next")),
            "is_previous": bool(flags.get("is_previous")),
            "finished": bool(flags.get("finished")),
            "data_updated_at": datetime.now(timezone.utc).isoformat(),
        }
        result = self.client.table("gameweeks").update(payload).eq(
            "id", gameweek_id
        ).execute()
        return result.data

    # Fixtures

    def get_fixtures_for_gameweek(self, gameweek_id: str) -> List[Dict[str, Any]]:
        result = self.client.table("fixtures").select("*").eq(
            "gameweek_id", gameweek_id
        ).order("kickoff_time").execute()
        return result.data or []

    def get_unprocessed_finished_fixtures(self) -> List[Dict[str, Any]]:
        """Full-time fixtures whose results have not been applied yet, oldest first."""
        result = self.client.table("fixtures").select("*").eq(
            "status", "FT"
        ).eq("results_processed", False).order("kickoff_time").execute()
        return result.data or []

    def mark_fixture_processed(self, fixture_id: str):
        result = self.client.table("fixtures").update(
            {"results_processed": True}
        ).eq("id", fixture_id).execute()
        return result.data

    # Teams

    def get_team(self, team_id: str) -> Optional[Dict[str, Any]]:
        result = self.client.table("teams").select("id, name, external_api_id").eq(
            "id", team_id
        ).limit(1).execute()
        return _first(result.data)

    def get_team_by_external_id(self, external_id: Any) -> Optional[Dict[str, Any]]:
        result = self.client.table("teams").select("id, name, external_api_id").eq(
            "external_api_id", str(external_id)
        ).limit(1).execute()
        return _first(result.data)

    def get_teams(self) -> List[Dict[str, Any]]:
        result = self.client.table("teams").select("id, external_api_id").execute()
        return result.data or []

    def get_teams_by_external_ids(self, external_ids: Iterable[Any]) -> List[Dict[str, Any]]:
        ids = [str(i) for i in external_ids]
        if not ids:
            return []
        result = self.client.table("teams").select("id, external_api_id").in_(
            "external_api_id", ids
        ).execute()
        return result.data or []

    # Picks

    def get_pick(self, user_id: str, round_id: str) -> Optional[Dict[str, Any]]:
        result = self.client.table("picks").select("*").eq(
            "user_id", user_id
        ).eq("round_id", round_id).limit(1).execute()
        return _first(result.data)

    def upsert_pick(self, pick_data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """
        Upsert a pick keyed on (user_id, round_id).

        Last write wins; there is no version check.
        """
        result = self.client.table("picks").upsert(
            pick_data,
            on_conflict="user_id,round_id"
        ).execute()
        return _first(result.data)

    def get_pending_picks_past_deadline(self, now: datetime) -> List[Dict[str, Any]]:
        """Pending picks whose round deadline is at or before now (inner join on rounds)."""
        result = self.client.table("picks").select(
            "id, round_id, rounds!inner(deadline_date)"
        ).eq("status", "pending").lte(
            "rounds.deadline_date", now.astimezone(timezone.utc).isoformat()
        ).execute()
        return result.data or []

    def lock_picks(self, pick_ids: List[str]) -> List[Dict[str, Any]]:
        """Set status=locked, only for picks still pending."""
        if not pick_ids:
            return []
        result = self.client.table("picks").update({"status": "locked"}).in_(
            "id", pick_ids
        ).eq("status", "pending").execute()
        return result.data or []

    def eliminate_picks(
        self,
        round_id: str,
        team_ids: List[str],
        live_statuses: List[str]
    ) -> List[Dict[str, Any]]:
        """Set status=eliminated for live picks on the given teams in a round."""
        if not team_ids:
            return []
        result = self.client.table("picks").update({"status": "eliminated"}).eq(
            "round_id", round_id
        ).in_("status", live_statuses).in_("team_id", team_ids).execute()
        return result.data or []

    def get_round_picks(self, round_id: str) -> List[Dict[str, Any]]:
        result = self.client.table("picks").select("*").eq(
            "round_id", round_id
        ).execute()
        return result.data or []

    def get_user_picks_for_rounds(self, user_id: str, round_ids: List[str]) -> List[Dict[str, Any]]:
        if not round_ids:
            return []
        result = self.client.table("picks").select("*").eq(
            "user_id", user_id
        ).in_("round_id", round_ids).execute()
        return result.data or []

    # Payments (competition entries)

    def insert_payment(self, payment_data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        result = self.client.table("payments").insert(payment_data).execute()
        return _first(result.data)

    def count_payments(self, user_id: str, competition_id: str) -> int:
        result = self.client.table("payments").select("id", count="exact").eq(
            "user_id", user_id
        ).eq("competition_id", competition_id).execute()
        if result.count is not None:
            return result.count
        return len(result.data or [])

    # Job locks

    def delete_expired_job_lock(self, job_name: str, now: datetime):
        self.client.table("job_locks").delete().eq(
            "job_name", job_name
        ).lt("expires_at", now.astimezone(timezone.utc).isoformat()).execute()

    def insert_job_lock(self, lock_data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Insert a lock row; raises APIError (23505) if the job is already held."""
        result = self.client.table("job_locks").insert(lock_data).execute()
        return _first(result.data)

    def delete_job_lock(self, job_name: str, holder: str):
        self.client.table("job_locks").delete().eq(
            "job_name", job_name
        ).eq("holder", holder).execute()
