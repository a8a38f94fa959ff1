#!/usr/bin/env python3
"""
Lock pending picks in rounds whose deadline has passed.

Usage:
    python3 scripts/lock_expired_picks.py
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
from services.picks import PickService
from utils.logger import setup_logging


def lock_expired_picks():
    config = Config()
    setup_logging(config)
    db_client = SupabaseClient(config)

    print("🔒 Locking picks past their round deadline...\n")
    response = PickService(db_client).lock_expired_picks()
    if response.error:
        print(f"❌ Error locking picks: {response.error.message}")
        sys.exit(1)

    if not response.data:
        print("✅ No pending picks past their deadline")
    else:
        print(f"✅ Locked {len(response.data)} picks")


if __name__ == "__main__":
    lock_expired_picks()
