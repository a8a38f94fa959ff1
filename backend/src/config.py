"""
Configuration management for the Last Man Standing backend.

Loads configuration from environment variables with sensible defaults.
"""

import os
from dataclasses import dataclass, field
from typing import List, Optional, Tuple


@dataclass
class Config:
    """Application configuration."""

    # Environment
    environment: str = os.getenv("ENVIRONMENT", "development")

    # Supabase Configuration
    supabase_url: str = os.getenv("SUPABASE_URL", "")
    supabase_key: str = os.getenv("SUPABASE_KEY", "")
    supabase_service_key: Optional[str] = os.getenv("SUPABASE_SERVICE_KEY", None)

    # Shared secret for the /api/cron/* endpoints (empty disables the check)
    cron_secret: str = os.getenv("CRON_SECRET", "")

    # Round lifecycle
    # Rounds after the current one that stay open for picks
    round_window_size: int = int(os.getenv("ROUND_WINDOW_SIZE", "4"))
    # Pick pages only open rounds whose deadline is within this many weeks
    selection_horizon_weeks: int = int(os.getenv("SELECTION_HORIZON_WEEKS", "5"))
    # Days after the final gameweek deadline before the season counts as complete
    season_complete_after_days: int = int(os.getenv("SEASON_COMPLETE_AFTER_DAYS", "7"))

    # Cache Configuration
    round_cache_ttl: int = int(os.getenv("ROUND_CACHE_TTL", "300"))  # 5 minutes

    # Job intervals (in seconds)
    lock_picks_interval: int = int(os.getenv("LOCK_PICKS_INTERVAL", "60"))
    results_interval: int = int(os.getenv("RESULTS_INTERVAL", "300"))
    gameweek_status_interval: int = int(os.getenv("GAMEWEEK_STATUS_INTERVAL", "3600"))
    # Lease length for job locks; a crashed runner's lock expires after this
    job_lock_ttl: int = int(os.getenv("JOB_LOCK_TTL", "900"))

    # (league_id, season) pairs the gameweek status job maintains.
    # Set TRACKED_LEAGUES as comma-separated league:season pairs, e.g. "39:2023,40:2023".
    tracked_leagues: List[Tuple[int, int]] = field(default_factory=list)

    # Logging
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    log_format: str = os.getenv("LOG_FORMAT", "json")  # json or text

    def validate(self):
        """Validate configuration."""
        errors = []

        if not self.supabase_url:
            errors.append("SUPABASE_URL is required")
        if not self.supabase_key:
            errors.append("SUPABASE_KEY is required")
        if self.round_window_size < 0:
            errors.append("ROUND_WINDOW_SIZE must not be negative")
        if self.selection_horizon_weeks <= 0:
            errors.append("SELECTION_HORIZON_WEEKS must be positive")

        if errors:
            raise ValueError(f"Configuration errors: {', '.join(errors)}")

        return True

    def __post_init__(self):
        """Parse tracked leagues, then validate."""
        if not self.tracked_leagues:
            self.tracked_leagues = parse_tracked_leagues(
                os.getenv("TRACKED_LEAGUES", "39:2023")
            )
        self.validate()


def parse_tracked_leagues(raw: str) -> List[Tuple[int, int]]:
    """Parse "39:2023,40:2023" into [(39, 2023), (40, 2023)], skipping malformed pairs."""
    pairs: List[Tuple[int, int]] = []
    for item in raw.split(","):
        item = item.strip()
        if not item or ":" not in item:
            continue
        league, _, season = item.partition(":")
        try:
            pair = (int(league), int(season))
        except ValueError:
            continue
        if pair not in pairs:
            pairs.append(pair)
    return pairs
