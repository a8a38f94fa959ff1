import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

# Add src directory to path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent / "src"))

from config import Config
from database.supabase_client import SupabaseClient

from fakes import FakeSupabase

NOW = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


def at(days: float = 0, hours: float = 0, minutes: float = 0) -> str:
    """ISO timestamp relative to NOW."""
    return (NOW + timedelta(days=days, hours=hours, minutes=minutes)).isoformat()


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def config():
    return Config(
        supabase_url="http://localhost:54321",
        supabase_key="test-key",
        cron_secret="cron-secret",
        round_window_size=4,
        selection_horizon_weeks=5,
        tracked_leagues=[(39, 2023)],
    )


@pytest.fixture
def fake():
    return FakeSupabase()


@pytest.fixture
def db(config, fake):
    return SupabaseClient(config, client=fake)


@pytest.fixture
def competition(fake):
    return fake.seed("competitions", {
        "id": "comp-1",
        "title": "Premier League 2023/24 Last Man Standing",
        "sport": "football",
        "entry_fee": 0,
        "prize_pot": 0,
        "status": "active",
        "start_date": "2023-08-01T00:00:00+00:00",
        "rolled_over": False,
    })[0]


@pytest.fixture
def teams(fake):
    """Three teams keyed by external provider id."""
    rows = fake.seed(
        "teams",
        {"id": "team-ars", "name": "Arsenal", "external_api_id": "42", "league": "Premier League"},
        {"id": "team-che", "name": "Chelsea", "external_api_id": "49", "league": "Premier League"},
        {"id": "team-liv", "name": "Liverpool", "external_api_id": "40", "league": "Premier League"},
    )
    return {r["external_api_id"]: r for r in rows}


def seed_rounds(fake, competition_id, deadlines):
    """Rounds numbered 1..n with the given deadline offsets in days from NOW."""
    return fake.seed("rounds", *[
        {
            "id": f"{competition_id}-r{i}",
            "competition_id": competition_id,
            "round_number": i,
            "deadline_date": at(days=offset),
        }
        for i, offset in enumerate(deadlines, start=1)
    ])


def seed_gameweeks(fake, deadlines, league_id=39, season=2023):
    """Gameweeks numbered 1..n with the given deadline offsets in days from NOW."""
    return fake.seed("gameweeks", *[
        {
            "id": f"gw-{league_id}-{season}-{i}",
            "league_id": league_id,
            "season": season,
            "gameweek_number": i,
            "deadline_time": at(days=offset),
            "is_current": False,
            "is_next": False,
            "is_previous": False,
            "finished": False,
        }
        for i, offset in enumerate(deadlines, start=1)
    ])
