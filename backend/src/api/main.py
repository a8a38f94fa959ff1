"""
Backend API: competitions, rounds, picks and the cron triggers for the
round lifecycle jobs.
"""

import logging
import sys
from pathlib import Path
from typing import List, Optional, Union

from dotenv import load_dotenv

# Load .env and ensure backend/src is on path
backend_dir = Path(__file__).resolve().parent.parent.parent
load_dotenv(backend_dir / ".env")
sys.path.insert(0, str(backend_dir / "src"))

from fastapi import Depends, FastAPI, Header, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel, Field

from config import Config
from database.supabase_client import SupabaseClient
from lifecycle.classifier import serialize_round
from lifecycle.gameweeks import GameweekStatusUpdater
from lifecycle.job_lock import JobLock
from lifecycle.orchestrator import GAMEWEEK_STATUS_JOB, RESULTS_JOB
from lifecycle.results import ResultResolver
from services.cache import RoundCache, TTLRoundCache
from services.competitions import PAID_ENTRY, CompetitionService
from services.errors import ServiceError, http_status_for
from services.payments import PaymentEntryService
from services.picks import PickService
from services.rounds import RoundService
from services.teams import TeamService

logger = logging.getLogger(__name__)

app = FastAPI(title="Last Man Standing API", version="1.0.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Lazy init so we don't require Supabase in tests
_config: Optional[Config] = None
_db: Optional[SupabaseClient] = None
_round_cache: Optional[RoundCache] = None

bearer_scheme = HTTPBearer(auto_error=False)


def get_config() -> Config:
    global _config
    if _config is None:
        _config = Config()
    return _config


def get_db() -> SupabaseClient:
    global _db
    if _db is None:
        _db = SupabaseClient(get_config())
    return _db


def get_round_cache() -> RoundCache:
    """Process-wide round cache shared by all requests."""
    global _round_cache
    if _round_cache is None:
        _round_cache = TTLRoundCache(ttl=get_config().round_cache_ttl)
    return _round_cache


def get_round_service(
    db: SupabaseClient = Depends(get_db),
    config: Config = Depends(get_config),
    cache: RoundCache = Depends(get_round_cache),
) -> RoundService:
    return RoundService(db, config, cache)


def get_pick_service(
    db: SupabaseClient = Depends(get_db),
    round_service: RoundService = Depends(get_round_service),
) -> PickService:
    return PickService(db, round_service)


def get_current_user_id_optional(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: SupabaseClient = Depends(get_db),
) -> Optional[str]:
    """User id for a Supabase Auth access token, None when absent or invalid."""
    if credentials is None or not credentials.credentials:
        return None
    try:
        return db.get_user_id_for_token(credentials.credentials)
    except Exception as e:
        logger.warning("Could not resolve access token", extra={"error": str(e)})
        return None


def get_current_user_id(user_id: Optional[str] = Depends(get_current_user_id_optional)) -> str:
    if not user_id:
        raise HTTPException(
            status_code=401,
            detail="Authentication required",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user_id


def require_cron_secret(
    authorization: Optional[str] = Header(None),
    config: Config = Depends(get_config),
):
    """Shared-secret bearer check for the cron endpoints; open when no secret is configured."""
    if config.cron_secret and authorization != f"Bearer {config.cron_secret}":
        raise HTTPException(status_code=401, detail="Unauthorized")


def _error_response(error: ServiceError) -> JSONResponse:
    return JSONResponse(status_code=http_status_for(error), content=error.to_dict())


class PickItem(BaseModel):
    roundId: Optional[str] = None
    teamId: Optional[Union[str, int]] = None
    isExternalId: bool = True


class PicksRequest(BaseModel):
    """Either a single pick (roundId, teamId) or a batch under ``picks``."""
    roundId: Optional[str] = None
    teamId: Optional[Union[str, int]] = None
    isExternalId: bool = True
    picks: Optional[List[PickItem]] = None


class RoundPicksRequest(BaseModel):
    selectedTeamIds: List[Union[str, int]] = Field(default_factory=list)


class ProcessResultsRequest(BaseModel):
    competitionId: Optional[str] = Field(None, description="Limit to one competition")


@app.get("/api/competitions")
def list_competitions(db: SupabaseClient = Depends(get_db)):
    """Active competitions with their rounds."""
    response = CompetitionService(db).find_active_competitions()
    if response.error:
        return _error_response(response.error)
    return response.data


@app.get("/api/competitions/{competition_id}")
def get_competition(
    competition_id: str,
    user_id: Optional[str] = Depends(get_current_user_id_optional),
    db: SupabaseClient = Depends(get_db),
    round_service: RoundService = Depends(get_round_service),
    pick_service: PickService = Depends(get_pick_service),
):
    """
    Competition with classified rounds (status, is_selectable, is_open_for_picks).

    Signed-in callers also get ``user_picks``: their own picks keyed by round id.
    """
    found = CompetitionService(db).find_competition_by_id(competition_id)
    if found.error:
        return _error_response(found.error)
    rounds = round_service.get_classified_rounds(competition_id)
    if rounds.error:
        return _error_response(rounds.error)
    body = {**found.data, "rounds": [serialize_round(r) for r in rounds.data]}
    if user_id:
        user_picks = pick_service.get_user_picks_for_rounds(user_id, [r["id"] for r in rounds.data])
        if user_picks.error:
            return _error_response(user_picks.error)
        body["user_picks"] = user_picks.data
    return body


@app.get("/api/competitions/{competition_id}/current-round")
def current_round(
    competition_id: str,
    round_service: RoundService = Depends(get_round_service),
):
    """The CURRENT round, or the latest round once every deadline has passed."""
    response = round_service.get_current_active_round(competition_id)
    if response.error:
        return _error_response(response.error)
    return serialize_round(response.data)


@app.post("/api/competitions/{competition_id}/enter")
def enter_competition(
    competition_id: str,
    user_id: str = Depends(get_current_user_id),
    db: SupabaseClient = Depends(get_db),
):
    requirement = CompetitionService(db).check_entry_requirement(competition_id)
    if requirement.error:
        return _error_response(requirement.error)

    entry_fee = requirement.data["entry_fee"]
    payment_type = requirement.data["payment_type"]
    logger.info("User entering competition", extra={
        "user_id": user_id,
        "competition_id": competition_id,
        "payment_type": payment_type
    })
    response = PaymentEntryService(db).enter_competition(user_id, competition_id, entry_fee, payment_type)
    if response.error:
        return _error_response(response.error)

    if payment_type == PAID_ENTRY:
        return {
            "payment_required": True,
            "payment_data": response.data,
            "checkout_url": f"/checkout/{competition_id}",
        }
    return JSONResponse(status_code=201, content={
        "message": "Successfully entered competition",
        "data": response.data,
    })


@app.get("/api/competitions/{competition_id}/entry-status")
def entry_status(
    competition_id: str,
    user_id: Optional[str] = Depends(get_current_user_id_optional),
    db: SupabaseClient = Depends(get_db),
):
    if not user_id:
        return {"isEntered": False}
    response = PaymentEntryService(db).check_user_entry(user_id, competition_id)
    if response.error:
        return _error_response(response.error)
    return {"isEntered": response.data["isEntered"]}


@app.get("/api/competitions/{competition_id}/rounds/{round_id}/picks")
def round_picks(
    competition_id: str,
    round_id: str,
    user_id: str = Depends(get_current_user_id),
    pick_service: PickService = Depends(get_pick_service),
):
    """Own pick while the round is open; every entrant's pick once it has closed."""
    response = pick_service.get_competition_round_picks(user_id, competition_id, round_id)
    if response.error:
        return _error_response(response.error)
    return response.data


@app.post("/api/competitions/{competition_id}/rounds/{round_id}/picks")
def save_round_picks(
    competition_id: str,
    round_id: str,
    body: RoundPicksRequest,
    user_id: str = Depends(get_current_user_id),
    pick_service: PickService = Depends(get_pick_service),
):
    """Save an entrant's pick for a round from external team ids."""
    locked = pick_service.lock_expired_picks()
    if locked.error:
        return _error_response(locked.error)
    response = pick_service.save_competition_round_pick(
        user_id, competition_id, round_id, body.selectedTeamIds
    )
    if response.error:
        return _error_response(response.error)
    return {"success": True, "message": "Picks saved successfully", "picks": [response.data]}


@app.get("/api/rounds")
def list_rounds(
    competition_id: Optional[str] = Query(None, alias="competitionId"),
    page: int = Query(1),
    page_size: int = Query(10, alias="pageSize"),
    round_service: RoundService = Depends(get_round_service),
):
    response = round_service.list_rounds(competition_id, page, page_size)
    if response.error:
        return _error_response(response.error)
    return response.data


@app.get("/api/rounds/{round_id}/fixtures")
def round_fixtures(
    round_id: str,
    force_refresh: bool = Query(False, alias="forceRefresh"),
    round_service: RoundService = Depends(get_round_service),
):
    response = round_service.find_round_with_fixtures(round_id, force_refresh=force_refresh)
    if response.error:
        return _error_response(response.error)
    round_data = serialize_round(response.data)
    fixtures = round_data.pop("fixtures", [])
    return {"round": round_data, "fixtures": fixtures}


@app.get("/api/picks")
def get_pick(
    round_id: str = Query(..., alias="roundId"),
    user_id: str = Depends(get_current_user_id),
    pick_service: PickService = Depends(get_pick_service),
):
    """The user's pick for a round (null when none), after locking expired picks."""
    locked = pick_service.lock_expired_picks()
    if locked.error:
        return _error_response(locked.error)
    response = pick_service.find_user_pick_for_round(user_id, round_id)
    if response.error:
        return _error_response(response.error)
    return response.data


@app.post("/api/picks")
def save_picks(
    body: PicksRequest,
    user_id: str = Depends(get_current_user_id),
    pick_service: PickService = Depends(get_pick_service),
):
    """Save one pick, or a batch with per-item results."""
    locked = pick_service.lock_expired_picks()
    if locked.error:
        return _error_response(locked.error)

    if body.picks is not None:
        if not body.picks:
            return JSONResponse(status_code=400, content={"error": "No picks provided", "code": "VALIDATION_ERROR"})
        return pick_service.save_picks(user_id, [p.model_dump() for p in body.picks])

    if not body.roundId:
        return JSONResponse(status_code=400, content={"error": "Round ID is required", "code": "VALIDATION_ERROR"})
    if body.teamId is None or str(body.teamId) == "":
        return JSONResponse(status_code=400, content={"error": "Team ID is required", "code": "VALIDATION_ERROR"})

    check = pick_service.ensure_round_open(body.roundId)
    if check.error:
        return _error_response(check.error)

    response = pick_service.save_user_pick(user_id, body.roundId, body.teamId, body.isExternalId)
    if response.error:
        return _error_response(response.error)
    return response.data


@app.get("/api/teams/lookup")
def lookup_team(id: str = Query(...), db: SupabaseClient = Depends(get_db)):
    response = TeamService(db).lookup_team(id)
    if response.error:
        return _error_response(response.error)
    return response.data


@app.post("/api/cron/update-gameweek-status", dependencies=[Depends(require_cron_secret)])
def cron_update_gameweek_status(
    db: SupabaseClient = Depends(get_db),
    config: Config = Depends(get_config),
    round_service: RoundService = Depends(get_round_service),
):
    lease = JobLock(db, GAMEWEEK_STATUS_JOB, config.job_lock_ttl)
    with lease.held() as acquired:
        if not acquired:
            return {"success": True, "skipped": True, "message": "Gameweek status update already running"}
        results = GameweekStatusUpdater(db, config).update_all()
    # Cached round bundles embed gameweek rows
    round_service.clear_cache()
    return {"success": all(r.get("success") for r in results), "results": results}


@app.post("/api/cron/process-results", dependencies=[Depends(require_cron_secret)])
def cron_process_results(
    body: Optional[ProcessResultsRequest] = None,
    db: SupabaseClient = Depends(get_db),
    config: Config = Depends(get_config),
    round_service: RoundService = Depends(get_round_service),
):
    competition_id = body.competitionId if body else None
    lease = JobLock(db, RESULTS_JOB, config.job_lock_ttl)
    with lease.held() as acquired:
        if not acquired:
            return {"success": True, "skipped": True, "message": "Result processing already running"}
        summary = ResultResolver(db).process_results(competition_id)
    if summary.processed:
        round_service.clear_cache()
    return {"success": summary.failed == 0, **summary.to_dict()}


@app.post("/api/cron/lock-picks", dependencies=[Depends(require_cron_secret)])
def cron_lock_picks(pick_service: PickService = Depends(get_pick_service)):
    response = pick_service.lock_expired_picks()
    if response.error:
        return _error_response(response.error)
    return {"success": True, "locked": len(response.data)}


@app.get("/health")
def health():
    return {"status": "ok"}
