"""
Competition service: active competitions with their rounds, single
competition lookup, and entry requirement (free vs paid).
"""

import logging
from collections import defaultdict
from typing import Any, Dict, List

from database.supabase_client import SupabaseClient
from services.errors import CompetitionError, ServiceResponse, wrap_unexpected

logger = logging.getLogger(__name__)

FREE_ENTRY = "free_entry"
PAID_ENTRY = "paid_entry"


class CompetitionService:
    """Read access to competitions."""

    def __init__(self, db_client: SupabaseClient):
        self.db_client = db_client

    def find_active_competitions(self) -> ServiceResponse[List[Dict[str, Any]]]:
        """Active competitions, each with its rounds ordered by round_number."""
        try:
            competitions = self.db_client.get_active_competitions()
            rounds = self.db_client.get_rounds_for_competitions([c["id"] for c in competitions])
            by_competition: Dict[str, List[Dict[str, Any]]] = defaultdict(list)
            for r in rounds:
                by_competition[r["competition_id"]].append(r)

            result = [{**c, "rounds": by_competition.get(c["id"], [])} for c in competitions]
            logger.debug("Fetched active competitions", extra={"count": len(result)})
            return ServiceResponse.success(result)
        except Exception as e:
            return ServiceResponse.failure(
                wrap_unexpected(CompetitionError, "Failed to fetch active competitions.", e)
            )

    def find_competition_by_id(self, competition_id: str) -> ServiceResponse[Dict[str, Any]]:
        if not competition_id:
            return ServiceResponse.failure(CompetitionError.validation("Competition ID is required."))
        try:
            competition = self.db_client.get_competition(competition_id)
            if competition is None:
                return ServiceResponse.failure(
                    CompetitionError.not_found(f"Competition with ID {competition_id} not found.")
                )
            return ServiceResponse.success(competition)
        except Exception as e:
            return ServiceResponse.failure(
                wrap_unexpected(CompetitionError, "Failed to fetch competition.", e,
                                competition_id=competition_id)
            )

    def check_entry_requirement(self, competition_id: str) -> ServiceResponse[Dict[str, Any]]:
        """
        Entry fee and payment type for a competition.

        Returns:
            {"entry_fee": float, "payment_type": "free_entry" | "paid_entry"}
        """
        found = self.find_competition_by_id(competition_id)
        if found.error:
            return ServiceResponse.failure(found.error)

        entry_fee = float(found.data.get("entry_fee") or 0)
        return ServiceResponse.success({
            "entry_fee": entry_fee,
            "payment_type": PAID_ENTRY if entry_fee > 0 else FREE_ENTRY,
        })
