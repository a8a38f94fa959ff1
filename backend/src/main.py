#!/usr/bin/env python3
"""
Last Man Standing Job Service - Main Entry Point

Keeps the round lifecycle moving without user traffic: picks are locked
after deadlines, finished fixtures eliminate picks and gameweek flags are
recomputed. Runs the job loops until stopped, or each selected job once
with --once (for an external scheduler).

Usage:
    python src/main.py
    python src/main.py --jobs lock_picks process_results
    python src/main.py --once --jobs update_gameweek_status
"""

import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv
load_dotenv(Path(__file__).resolve().parent.parent / ".env")

sys.path.insert(0, str(Path(__file__).parent))

from config import Config
from lifecycle.orchestrator import JOB_NAMES, JobOrchestrator
from utils.logger import setup_logging

logger = logging.getLogger(__name__)


class LastManStandingService:
    """Owns the orchestrator and its shutdown signals."""

    def __init__(self, config: Config, job_names: Optional[List[str]] = None):
        self.config = config
        self.job_names = job_names
        self.orchestrator = JobOrchestrator(config)

    def _install_signal_handlers(self):
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, self._handle_shutdown, sig)

    def _handle_shutdown(self, signum):
        logger.info("Received shutdown signal", extra={"signal": signum})
        asyncio.create_task(self.orchestrator.shutdown())

    async def serve(self):
        """Run the job loops until a shutdown signal arrives."""
        logger.info("Starting Last Man Standing job service", extra={
            "environment": self.config.environment,
            "jobs": self.job_names or JOB_NAMES
        })
        await self.orchestrator.initialize()
        self._install_signal_handlers()
        await self.orchestrator.run(self.job_names)

    async def run_once(self) -> dict:
        """Run each selected job a single time."""
        await self.orchestrator.initialize()
        loop = asyncio.get_running_loop()
        results = await loop.run_in_executor(None, self.orchestrator.run_once, self.job_names)
        logger.info("Jobs completed", extra={"results": results})
        return results


async def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Last Man Standing lifecycle jobs")
    parser.add_argument("--jobs", nargs="+", choices=JOB_NAMES, help="Jobs to run (default: all)")
    parser.add_argument("--once", action="store_true", help="Run each job once and exit")
    args = parser.parse_args(argv)

    config = Config()
    setup_logging(config)
    service = LastManStandingService(config, args.jobs)

    try:
        if args.once:
            await service.run_once()
        else:
            await service.serve()
    except Exception as e:
        logger.error("Job service crashed", extra={
            "error": str(e),
            "error_type": type(e).__name__
        }, exc_info=True)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
