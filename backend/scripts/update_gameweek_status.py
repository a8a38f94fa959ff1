#!/usr/bin/env python3
"""
Recompute is_current / is_next / is_previous / finished for gameweeks.

Usage:
    python3 scripts/update_gameweek_status.py                 # TRACKED_LEAGUES from env
    python3 scripts/update_gameweek_status.py --league 39 --season 2023
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
from lifecycle.gameweeks import GameweekStatusUpdater
from utils.logger import setup_logging


def update_gameweek_status(league_id=None, season=None):
    config = Config()
    setup_logging(config)
    db_client = SupabaseClient(config)
    updater = GameweekStatusUpdater(db_client, config)

    leagues = [(league_id, season)] if league_id is not None else config.tracked_leagues
    print(f"🔄 Updating gameweek status for {len(leagues)} league season(s)...\n")

    reports = updater.update_all(leagues)
    failed = False
    for report in reports:
        label = f"league {report['league']} season {report['season']}"
        if not report.get("success"):
            failed = True
            print(f"  ❌ {label}: {report.get('error') or str(report.get('failed', 0)) + ' updates failed'}")
            continue
        if not report.get("total"):
            print(f"  ⚠️  {label}: no gameweeks found")
            continue
        if report.get("season_complete"):
            print(f"  ✅ {label}: season complete, {report['updated']} gameweeks finished")
            continue
        print(
            f"  ✅ {label}: current GW{report['current_gameweek']}, "
            f"next GW{report['next_gameweek']}, previous GW{report['previous_gameweek']} "
            f"({report['updated']}/{report['total']} updated)"
        )

    if failed:
        sys.exit(1)


if __name__ == "__main__":
    import argparse
    parser = argparse.ArgumentParser(description="Update gameweek status flags.")
    parser.add_argument("--league", type=int, help="League id (requires --season)")
    parser.add_argument("--season", type=int, help="Season year")
    args = parser.parse_args()
    if (args.league is None) != (args.season is None):
        parser.error("--league and --season must be given together")
    update_gameweek_status(args.league, args.season)
