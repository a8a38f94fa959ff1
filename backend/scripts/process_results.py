#!/usr/bin/env python3
"""
Apply finished fixture results: eliminate losing/drawing picks and mark the
fixtures processed.

Usage:
    python3 scripts/process_results.py
    python3 scripts/process_results.py --competition <uuid>
    python3 scripts/process_results.py --no-lock
"""

import sys
from pathlib import Path
from dotenv import load_dotenv

# Load environment variables
load_dotenv(Path(__file__).parent.parent / ".env")

# Add src directory to path
backend_dir = Path(__file__).parent.parent
src_dir = backend_dir / "src"
sys.path.insert(0, str(src_dir))

from config import Config
from database.supabase_client import SupabaseClient
from lifecycle.job_lock import JobLock
from lifecycle.orchestrator import RESULTS_JOB
from lifecycle.results import FixtureOutcome, ResultResolver
from utils.logger import setup_logging


def process_results(competition_id=None, use_lock=True):
    """Run the result resolver once and print a summary."""
    config = Config()
    setup_logging(config)
    db_client = SupabaseClient(config)

    print("⚽ Processing finished fixtures...\n")

    lease = JobLock(db_client, RESULTS_JOB, config.job_lock_ttl)
    if use_lock and not lease.acquire():
        print("⏭️  Result processing is already running elsewhere, skipping")
        return

    try:
        summary = ResultResolver(db_client).process_results(competition_id)
    except Exception as e:
        print(f"❌ Error processing results: {e}")
        sys.exit(1)
    finally:
        if use_lock:
            lease.release()

    for result in summary.fixtures:
        if result.outcome == FixtureOutcome.PROCESSED:
            note = f" ({result.reason})" if result.reason else ""
            print(f"  ✅ {result.fixture_id}: {result.eliminated} picks eliminated{note}")
        elif result.outcome == FixtureOutcome.SKIPPED:
            print(f"  ⚠️  {result.fixture_id}: skipped ({result.reason})")
        else:
            print(f"  ❌ {result.fixture_id}: {result.error}")

    print(
        f"\n📊 Processed {summary.processed}, skipped {summary.skipped}, "
        f"failed {summary.failed}, eliminated {summary.eliminated} picks"
    )
    if summary.failed:
        sys.exit(1)


if __name__ == "__main__":
    import argparse
    parser = argparse.ArgumentParser(description="Apply finished fixture results to picks.")
    parser.add_argument("--competition", help="Only resolve rounds of this competition id (default: all active)")
    parser.add_argument("--no-lock", action="store_true", help="Run without taking the job lock")
    args = parser.parse_args()
    process_results(competition_id=args.competition, use_lock=not args.no_lock)
