"""
Team lookup by internal or external id.
"""

import logging
from typing import Any, Dict

from postgrest.exceptions import APIError

from database.supabase_client import SupabaseClient
from services.errors import ServiceResponse, TeamError, wrap_unexpected

logger = logging.getLogger(__name__)

# Postgres rejects a non-uuid literal compared against a uuid column
PG_INVALID_TEXT_REPRESENTATION = "22P02"


class TeamService:
    def __init__(self, db_client: SupabaseClient):
        self.db_client = db_client

    def lookup_team(self, team_id: str) -> ServiceResponse[Dict[str, Any]]:
        """Find a team by internal uuid, falling back to the provider's external id."""
        if not team_id:
            return ServiceResponse.failure(TeamError.validation("Invalid team ID"))
        try:
            team = None
            try:
                team = self.db_client.get_team(team_id)
            except APIError as e:
                if e.code != PG_INVALID_TEXT_REPRESENTATION:
                    raise

            if team is None:
                logger.debug("Team not found by internal id, trying external id", extra={
                    "team_id": team_id
                })
                team = self.db_client.get_team_by_external_id(team_id)

            if team is None:
                return ServiceResponse.failure(TeamError.not_found("Team not found"))
            return ServiceResponse.success({
                "id": team["id"],
                "name": team.get("name"),
                "external_api_id": team.get("external_api_id"),
            })
        except Exception as e:
            return ServiceResponse.failure(
                wrap_unexpected(TeamError, "Database error looking up team", e, team_id=team_id)
            )
