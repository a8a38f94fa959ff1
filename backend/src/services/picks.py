"""
Pick service.

Handles saving picks, reading them back and locking picks whose round
deadline has passed. Expired picks are locked before every read for display
and before every write.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from database.supabase_client import SupabaseClient
from lifecycle.classifier import is_deadline_passed, utc_now
from lifecycle.models import PickStatus
from services.errors import ErrorCode, PickError, ServiceResponse, wrap_unexpected
from services.rounds import RoundService

logger = logging.getLogger(__name__)


class PickService:
    """Pick reads, writes and the pending -> locked transition."""

    def __init__(
        self,
        db_client: SupabaseClient,
        round_service: Optional[RoundService] = None
    ):
        self.db_client = db_client
        self.round_service = round_service
        # external_api_id -> internal team uuid; team ids never change once ingested
        self._team_cache: Dict[str, str] = {}

    def lock_expired_picks(self, now: Optional[datetime] = None) -> ServiceResponse[List[Dict[str, Any]]]:
        """
        Move pending picks in rounds whose deadline has passed to locked.

        Returns the updated picks. When nothing qualifies the result is an
        empty list and no update is issued.
        """
        now = now or utc_now()
        try:
            pending = self.db_client.get_pending_picks_past_deadline(now)
            if not pending:
                return ServiceResponse.success([])

            locked = self.db_client.lock_picks([p["id"] for p in pending])
            logger.info("Locked expired picks", extra={
                "locked_count": len(locked),
                "candidate_count": len(pending)
            })
            return ServiceResponse.success(locked)
        except Exception as e:
            return ServiceResponse.failure(
                wrap_unexpected(PickError, "Failed to lock expired picks", e)
            )

    def find_user_pick_for_round(self, user_id: str, round_id: str) -> ServiceResponse[Optional[Dict[str, Any]]]:
        """The user's pick for a round; data is None when they have not picked."""
        if not user_id:
            return ServiceResponse.failure(PickError.validation("User ID is required."))
        if not round_id:
            return ServiceResponse.failure(PickError.validation("Round ID is required."))
        try:
            return ServiceResponse.success(self.db_client.get_pick(user_id, round_id))
        except Exception as e:
            return ServiceResponse.failure(
                wrap_unexpected(PickError, "Failed to fetch user pick.", e, user_id=user_id, round_id=round_id)
            )

    def find_team_uuid_by_external_id(
        self,
        external_team_id: Any,
        use_cache: bool = True
    ) -> ServiceResponse[Optional[str]]:
        """Internal team uuid for an external provider id; data is None if unknown."""
        external_id = str(external_team_id)
        if use_cache and external_id in self._team_cache:
            logger.debug("Team cache hit", extra={"external_team_id": external_id})
            return ServiceResponse.success(self._team_cache[external_id])
        try:
            team = self.db_client.get_team_by_external_id(external_id)
        except Exception as e:
            return ServiceResponse.failure(
                wrap_unexpected(PickError, "Failed to look up team.", e, external_team_id=external_id)
            )
        if team is None:
            logger.warning("No team found for external id", extra={"external_team_id": external_id})
            return ServiceResponse.success(None)
        if use_cache:
            self._team_cache[external_id] = team["id"]
        return ServiceResponse.success(team["id"])

    def convert_external_team_ids(self, external_team_ids: List[Any]) -> ServiceResponse[List[Optional[str]]]:
        """Internal uuids for external ids in one query, order preserved, None for unknown ids."""
        try:
            mappings = self.db_client.get_teams_by_external_ids(external_team_ids)
        except Exception as e:
            return ServiceResponse.failure(
                wrap_unexpected(PickError, "Failed to convert external team IDs.", e)
            )
        by_external = {str(t["external_api_id"]): t["id"] for t in mappings}
        return ServiceResponse.success([by_external.get(str(i)) for i in external_team_ids])

    def ensure_round_open(self, round_id: str, now: Optional[datetime] = None) -> ServiceResponse[Dict[str, Any]]:
        """
        Reject writes to closed rounds.

        Fails with GAMEWEEK_FINISHED when the round's gameweek is finished and
        DEADLINE_PASSED when the round or gameweek deadline has passed.
        """
        if not round_id:
            return ServiceResponse.failure(PickError.validation("Round ID is required"))
        now = now or utc_now()
        try:
            round_row = self.db_client.get_round(round_id)
            if round_row is None:
                return ServiceResponse.failure(PickError.not_found("Round not found"))

            gameweek = None
            if self.round_service is not None:
                gameweek = self.round_service.get_round_gameweek(round_row)

            if gameweek is not None and gameweek.get("finished"):
                return ServiceResponse.failure(PickError(
                    "Cannot make picks for a finished gameweek",
                    ErrorCode.GAMEWEEK_FINISHED
                ))
            if is_deadline_passed(round_row.get("deadline_date"), now) or (
                gameweek is not None and is_deadline_passed(gameweek.get("deadline_time"), now)
            ):
                return ServiceResponse.failure(PickError(
                    "Cannot make picks after deadline has passed",
                    ErrorCode.DEADLINE_PASSED
                ))
            return ServiceResponse.success(round_row)
        except Exception as e:
            return ServiceResponse.failure(
                wrap_unexpected(PickError, "Failed to check round status", e, round_id=round_id)
            )

    def save_user_pick(
        self,
        user_id: str,
        round_id: str,
        team_id: Any,
        is_external_id: bool = True,
        now: Optional[datetime] = None
    ) -> ServiceResponse[Dict[str, Any]]:
        """
        Insert or replace the user's pick for a round.

        A pick saved after the round deadline is stored as locked rather than
        pending. Callers that must refuse late saves check ensure_round_open
        first.
        """
        if not user_id:
            return ServiceResponse.failure(PickError.validation("User ID is required."))
        if not round_id:
            return ServiceResponse.failure(PickError.validation("Round ID is required."))
        if team_id is None or str(team_id) == "":
            return ServiceResponse.failure(PickError.validation("Team ID is required."))

        now = now or utc_now()
        try:
            round_row = self.db_client.get_round(round_id)
            if round_row is None:
                return ServiceResponse.failure(PickError.not_found(f"Round {round_id} not found."))
            deadline_passed = is_deadline_passed(round_row.get("deadline_date"), now)

            internal_team_id = str(team_id)
            if is_external_id:
                lookup = self.find_team_uuid_by_external_id(team_id)
                if lookup.error:
                    return ServiceResponse.failure(lookup.error)
                if lookup.data is None:
                    return ServiceResponse.failure(
                        PickError.not_found(f"Team with external ID {team_id} not found.")
                    )
                internal_team_id = lookup.data

            status = PickStatus.LOCKED if deadline_passed else PickStatus.PENDING
            saved = self.db_client.upsert_pick({
                "user_id": user_id,
                "round_id": round_id,
                "team_id": internal_team_id,
                "status": status.value,
                "pick_timestamp": now.isoformat(),
            })
            if saved is None:
                return ServiceResponse.failure(PickError.database("Failed to save pick."))

            logger.info("Saved pick", extra={
                "user_id": user_id,
                "round_id": round_id,
                "pick_status": status.value
            })
            return ServiceResponse.success(saved)
        except Exception as e:
            return ServiceResponse.failure(
                wrap_unexpected(PickError, "Failed to save pick.", e, user_id=user_id, round_id=round_id)
            )

    def save_picks(
        self,
        user_id: str,
        picks: List[Dict[str, Any]],
        now: Optional[datetime] = None
    ) -> Dict[str, Any]:
        """
        Save a batch of picks, each checked and saved independently.

        Args:
            user_id: Picking user
            picks: Items with roundId, teamId and optional isExternalId (default True)

        Returns:
            {"success", "successCount", "errorCount", "results"} where each
            result carries roundId, success and either data or error/code
        """
        now = now or utc_now()
        results = []
        for pick in picks:
            round_id = pick.get("roundId")
            team_id = pick.get("teamId")
            if not round_id or team_id is None or str(team_id) == "":
                results.append({
                    "roundId": round_id or "unknown",
                    "success": False,
                    "error": "Round ID and Team ID are required",
                    "code": ErrorCode.VALIDATION_ERROR.value,
                })
                continue

            check = self.ensure_round_open(round_id, now)
            if check.error:
                results.append({
                    "roundId": round_id,
                    "success": False,
                    "error": check.error.message,
                    "code": check.error.code.value,
                })
                continue

            saved = self.save_user_pick(
                user_id, round_id, team_id, pick.get("isExternalId", True), now
            )
            if saved.error:
                results.append({
                    "roundId": round_id,
                    "success": False,
                    "error": saved.error.message,
                    "code": saved.error.code.value,
                })
            else:
                results.append({"roundId": round_id, "success": True, "data": saved.data})

        success_count = sum(1 for r in results if r["success"])
        return {
            "success": True,
            "successCount": success_count,
            "errorCount": len(results) - success_count,
            "results": results,
        }

    def get_round_picks(self, round_id: str, now: Optional[datetime] = None) -> ServiceResponse[List[Dict[str, Any]]]:
        """All picks in a round, after locking any that have expired."""
        if not round_id:
            return ServiceResponse.failure(PickError.validation("Round ID is required."))
        locked = self.lock_expired_picks(now)
        if locked.error:
            return ServiceResponse.failure(locked.error)
        try:
            return ServiceResponse.success(self.db_client.get_round_picks(round_id))
        except Exception as e:
            return ServiceResponse.failure(
                wrap_unexpected(PickError, "Failed to fetch round picks.", e, round_id=round_id)
            )

    def ensure_user_joined(self, user_id: str, competition_id: str) -> ServiceResponse[bool]:
        """Fail with NOT_ENTERED unless the user has an entry (payment row) for the competition."""
        try:
            if self.db_client.count_payments(user_id, competition_id) > 0:
                return ServiceResponse.success(True)
        except Exception as e:
            return ServiceResponse.failure(
                wrap_unexpected(PickError, "Failed to check competition entry.", e,
                                user_id=user_id, competition_id=competition_id)
            )
        return ServiceResponse.failure(PickError(
            "You must join this competition before making picks",
            ErrorCode.NOT_ENTERED
        ))

    def _competition_round(self, user_id: str, competition_id: str, round_id: str) -> ServiceResponse[Dict[str, Any]]:
        """The round, provided it belongs to the competition and the user has joined it."""
        if not user_id:
            return ServiceResponse.failure(PickError.validation("User ID is required."))
        if not competition_id or not round_id:
            return ServiceResponse.failure(PickError.validation("Competition ID and round ID are required."))
        try:
            round_row = self.db_client.get_round(round_id)
        except Exception as e:
            return ServiceResponse.failure(
                wrap_unexpected(PickError, "Failed to fetch round.", e, round_id=round_id)
            )
        if round_row is None or round_row.get("competition_id") != competition_id:
            return ServiceResponse.failure(PickError.not_found("Round not found"))
        joined = self.ensure_user_joined(user_id, competition_id)
        if joined.error:
            return ServiceResponse.failure(joined.error)
        return ServiceResponse.success(round_row)

    def get_competition_round_picks(
        self,
        user_id: str,
        competition_id: str,
        round_id: str,
        now: Optional[datetime] = None
    ) -> ServiceResponse[Dict[str, Any]]:
        """
        Picks in a round as seen by an entrant.

        Before the deadline only the caller's own pick is returned; once the
        round has closed every entrant's pick is visible.
        """
        now = now or utc_now()
        found = self._competition_round(user_id, competition_id, round_id)
        if found.error:
            return ServiceResponse.failure(found.error)

        is_closed = is_deadline_passed(found.data.get("deadline_date"), now)
        if is_closed:
            picks = self.get_round_picks(round_id, now)
            if picks.error:
                return ServiceResponse.failure(picks.error)
            visible = picks.data
        else:
            own = self.find_user_pick_for_round(user_id, round_id)
            if own.error:
                return ServiceResponse.failure(own.error)
            visible = [own.data] if own.data else []
        return ServiceResponse.success({"round_id": round_id, "is_closed": is_closed, "picks": visible})

    def save_competition_round_pick(
        self,
        user_id: str,
        competition_id: str,
        round_id: str,
        external_team_ids: List[Any],
        now: Optional[datetime] = None
    ) -> ServiceResponse[Dict[str, Any]]:
        """
        Save an entrant's pick for a round from external team ids.

        A round holds one pick per user, so exactly one team id is accepted.
        """
        if not external_team_ids:
            return ServiceResponse.failure(PickError.validation("No team IDs selected"))
        if len(external_team_ids) > 1:
            return ServiceResponse.failure(PickError.validation("Only one team can be picked per round"))

        now = now or utc_now()
        found = self._competition_round(user_id, competition_id, round_id)
        if found.error:
            return ServiceResponse.failure(found.error)
        check = self.ensure_round_open(round_id, now)
        if check.error:
            return ServiceResponse.failure(check.error)

        converted = self.convert_external_team_ids(external_team_ids)
        if converted.error:
            return ServiceResponse.failure(converted.error)
        missing = [str(ext) for ext, uuid in zip(external_team_ids, converted.data) if uuid is None]
        if missing:
            return ServiceResponse.failure(PickError.validation(
                f"Could not find the following team IDs: {', '.join(missing)}"
            ))

        return self.save_user_pick(user_id, round_id, converted.data[0], is_external_id=False, now=now)

    def get_user_picks_for_rounds(
        self,
        user_id: str,
        round_ids: List[str]
    ) -> ServiceResponse[Dict[str, Dict[str, Any]]]:
        """The user's picks keyed by round id."""
        if not user_id:
            return ServiceResponse.failure(PickError.validation("User ID is required."))
        try:
            picks = self.db_client.get_user_picks_for_rounds(user_id, round_ids)
            return ServiceResponse.success({p["round_id"]: p for p in picks})
        except Exception as e:
            return ServiceResponse.failure(
                wrap_unexpected(PickError, "Failed to fetch user picks.", e, user_id=user_id)
            )
