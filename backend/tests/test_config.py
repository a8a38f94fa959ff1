import json
import logging

import pytest

from config import Config, parse_tracked_leagues
from utils.logger import JSONFormatter, TextFormatter, setup_logging


class TestParseTrackedLeagues:
    def test_pairs(self):
        assert parse_tracked_leagues("39:2023, 40:2023") == [(39, 2023), (40, 2023)]

    def test_malformed_and_duplicate_pairs_are_skipped(self):
        assert parse_tracked_leagues("39:2023,bad,39:x,,39:2023") == [(39, 2023)]

    def test_empty(self):
        assert parse_tracked_leagues("") == []


class TestConfig:
    def test_missing_supabase_settings(self):
        with pytest.raises(ValueError, match="SUPABASE_URL is required"):
            Config(supabase_url="", supabase_key="k")

    def test_negative_window(self):
        with pytest.raises(ValueError, match="ROUND_WINDOW_SIZE"):
            Config(supabase_url="http://x", supabase_key="k", round_window_size=-1)

    def test_tracked_leagues_from_environment(self, monkeypatch):
        monkeypatch.setenv("TRACKED_LEAGUES", "140:2024")
        config = Config(supabase_url="http://x", supabase_key="k")
        assert config.tracked_leagues == [(140, 2024)]

    def test_explicit_tracked_leagues_win(self, monkeypatch):
        monkeypatch.setenv("TRACKED_LEAGUES", "140:2024")
        config = Config(supabase_url="http://x", supabase_key="k", tracked_leagues=[(39, 2023)])
        assert config.tracked_leagues == [(39, 2023)]


def make_record(**extra):
    record = logging.LogRecord("lifecycle.results", logging.INFO, __file__, 1, "Fixture processed", None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestFormatters:
    def test_json_includes_extra_fields(self):
        payload = json.loads(JSONFormatter().format(make_record(fixture_id="f1", eliminated=2)))
        assert payload["message"] == "Fixture processed"
        assert payload["level"] == "INFO"
        assert payload["fixture_id"] == "f1"
        assert payload["eliminated"] == 2

    def test_text_appends_extra_fields(self):
        line = TextFormatter().format(make_record(fixture_id="f1"))
        assert "Fixture processed" in line
        assert line.endswith("fixture_id=f1")


def test_setup_logging_uses_config(config, tmp_path):
    config.log_level = "DEBUG"
    config.log_format = "text"
    log_file = tmp_path / "logs" / "jobs.log"
    try:
        setup_logging(config, log_file=log_file)
        root = logging.getLogger()
        assert root.level == logging.DEBUG
        assert len(root.handlers) == 2
        assert all(isinstance(h.formatter, TextFormatter) for h in root.handlers)
        logging.getLogger("lifecycle").info("hello")
        assert "hello" in log_file.read_text(encoding="utf-8")
    finally:
        for handler in logging.getLogger().handlers:
            handler.close()
        logging.getLogger().handlers.clear()
