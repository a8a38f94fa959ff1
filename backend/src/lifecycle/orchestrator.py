"""
Job Orchestrator - runs the round lifecycle jobs on a schedule.

Three independent loops:
- lock picks: pending -> locked once a round deadline passes
- results: eliminate picks from finished fixtures
- gameweek status: recompute current/next/previous/finished flags

The results and gameweek jobs take an advisory lease so two deployments (or a
cron-triggered API call) never run the same job concurrently.
"""

import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional, Tuple

from config import Config
from database.supabase_client import SupabaseClient
from lifecycle.gameweeks import GameweekStatusUpdater
from lifecycle.job_lock import JobLock
from lifecycle.results import ResultResolver
from services.picks import PickService

logger = logging.getLogger(__name__)

LOCK_PICKS_JOB = "lock_picks"
RESULTS_JOB = "process_results"
GAMEWEEK_STATUS_JOB = "update_gameweek_status"
JOB_NAMES = [LOCK_PICKS_JOB, RESULTS_JOB, GAMEWEEK_STATUS_JOB]

# Back-off after an unexpected loop error
ERROR_RETRY_SECONDS = 30


class JobOrchestrator:
    """Schedules the lifecycle jobs."""

    def __init__(self, config: Config, db_client: Optional[SupabaseClient] = None):
        self.config = config
        self.db_client = db_client
        self.pick_service: Optional[PickService] = None
        self.result_resolver: Optional[ResultResolver] = None
        self.gameweek_updater: Optional[GameweekStatusUpdater] = None
        self.running = False
        self.last_runs: Dict[str, Dict[str, Any]] = {}

    async def initialize(self):
        """Initialize clients and job objects."""
        logger.info("Orchestrator starting")
        if self.db_client is None:
            self.db_client = SupabaseClient(self.config)
        self.pick_service = PickService(self.db_client)
        self.result_resolver = ResultResolver(self.db_client)
        self.gameweek_updater = GameweekStatusUpdater(self.db_client, self.config)
        logger.info("Orchestrator ready", extra={
            "lock_picks_interval": self.config.lock_picks_interval,
            "results_interval": self.config.results_interval,
            "gameweek_status_interval": self.config.gameweek_status_interval
        })

    async def shutdown(self):
        logger.info("Orchestrator shutting down")
        self.running = False
        logger.info("Orchestrator stopped")

    def _with_lease(self, job_name: str, job: Callable[[], Dict[str, Any]]) -> Dict[str, Any]:
        lease = JobLock(self.db_client, job_name, self.config.job_lock_ttl)
        with lease.held() as acquired:
            if not acquired:
                return {"skipped": True, "reason": "lock_held"}
            return job()

    def run_lock_picks(self) -> Dict[str, Any]:
        """Lock pending picks in closed rounds. Conditional update, no lease needed."""
        response = self.pick_service.lock_expired_picks()
        if response.error:
            raise response.error
        return {"locked": len(response.data)}

    def run_results(self, competition_id: Optional[str] = None) -> Dict[str, Any]:
        return self._with_lease(
            RESULTS_JOB,
            lambda: self.result_resolver.process_results(competition_id).to_dict()
        )

    def run_gameweek_status(self) -> Dict[str, Any]:
        return self._with_lease(
            GAMEWEEK_STATUS_JOB,
            lambda: {"results": self.gameweek_updater.update_all()}
        )

    async def _run_loop(self, job_name: str, job: Callable[[], Dict[str, Any]], interval: int):
        """Run a blocking job every ``interval`` seconds until stopped."""
        loop = asyncio.get_event_loop()
        while self.running:
            try:
                # Supabase calls are synchronous; keep them off the event loop
                result = await loop.run_in_executor(None, job)
                self.last_runs[job_name] = result
                logger.info("Job completed", extra={"job_name": job_name, "result": result})
                await asyncio.sleep(interval)
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error("Job failed", extra={"job_name": job_name, "error": str(e)}, exc_info=True)
                await asyncio.sleep(min(interval, ERROR_RETRY_SECONDS))

    def _jobs(self) -> Dict[str, Tuple[Callable[[], Dict[str, Any]], int]]:
        return {
            LOCK_PICKS_JOB: (self.run_lock_picks, self.config.lock_picks_interval),
            RESULTS_JOB: (self.run_results, self.config.results_interval),
            GAMEWEEK_STATUS_JOB: (self.run_gameweek_status, self.config.gameweek_status_interval),
        }

    def run_once(self, job_names: Optional[List[str]] = None) -> Dict[str, Dict[str, Any]]:
        """Run the selected jobs (default: all) a single time, in order. Errors propagate."""
        jobs = self._jobs()
        results = {}
        for name in job_names or list(jobs):
            job, _ = jobs[name]
            results[name] = job()
            self.last_runs[name] = results[name]
        return results

    async def run(self, job_names: Optional[List[str]] = None):
        """Run the selected job loops (default: all) in parallel."""
        jobs = self._jobs()
        names = job_names or list(jobs)
        logger.info("Job loops started", extra={"jobs": names})
        self.running = True
        try:
            await asyncio.gather(*[
                self._run_loop(name, *jobs[name]) for name in names
            ])
        except asyncio.CancelledError:
            logger.info("Job loops cancelled")
        finally:
            self.running = False
