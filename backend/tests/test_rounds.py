import pytest

from lifecycle.models import RoundStatus
from services.cache import NullRoundCache, TTLRoundCache
from services.errors import ErrorCode
from services.rounds import RoundService, resolve_league

from conftest import NOW, seed_gameweeks, seed_rounds


class FakeClock:
    def __init__(self):
        self.t = 0.0

    def __call__(self):
        return self.t


class TestTTLRoundCache:
    def test_expiry(self):
        clock = FakeClock()
        cache = TTLRoundCache(ttl=10, clock=clock)
        cache.set("k", {"v": 1})
        clock.t = 9.9
        assert cache.get("k") == {"v": 1}
        clock.t = 10
        assert cache.get("k") is None

    def test_set_sweeps_expired_entries(self):
        clock = FakeClock()
        cache = TTLRoundCache(ttl=10, clock=clock)
        for page in range(1, 6):
            cache.set(f"rounds_list:comp-1_{page}_10", page)
        clock.t = 10
        cache.set("round:1", 1)
        assert len(cache) == 1

    def test_per_entry_ttl(self):
        clock = FakeClock()
        cache = TTLRoundCache(ttl=10, clock=clock)
        cache.set("short", 1, ttl=1)
        clock.t = 2
        assert cache.get("short") is None

    def test_invalidate(self):
        cache = TTLRoundCache()
        cache.set("round:1", 1)
        cache.set("rounds_list:a", 2)
        cache.set("rounds_list:b", 3)
        cache.invalidate(key="round:1")
        assert cache.get("round:1") is None
        cache.invalidate(prefix="rounds_list:")
        assert len(cache) == 0

    def test_invalidate_all(self):
        cache = TTLRoundCache()
        cache.set("a", 1)
        cache.set("b", 2)
        cache.invalidate()
        assert len(cache) == 0

    def test_null_cache(self):
        cache = NullRoundCache()
        cache.set("a", 1)
        assert cache.get("a") is None


def test_resolve_league(competition):
    assert resolve_league(competition) == (39, 2023)
    assert resolve_league({**competition, "sport": "rugby"}) is None
    assert resolve_league({**competition, "title": "La Liga"}) is None
    assert resolve_league({**competition, "start_date": None}) is None


class TestRoundService:
    @pytest.fixture
    def cache(self):
        return TTLRoundCache(ttl=300)

    @pytest.fixture
    def service(self, db, config, cache):
        return RoundService(db, config, cache)

    @pytest.fixture
    def rounds(self, fake, competition):
        return seed_rounds(fake, competition["id"], [-8, -1, 1, 8, 15, 22])

    def test_round_with_fixtures(self, fake, service, rounds):
        gameweeks = seed_gameweeks(fake, [-8, -1, 1])
        fake.seed("fixtures", {
            "gameweek_id": gameweeks[2]["id"],
            "home_team_id": 42,
            "away_team_id": 49,
            "kickoff_time": "2024-03-02T15:00:00+00:00",
            "status": "NS",
        })

        response = service.find_round_with_fixtures(rounds[2]["id"], now=NOW)

        assert response.ok
        assert response.data["status"] == RoundStatus.CURRENT
        assert response.data["is_selectable"] is True
        assert response.data["gameweek"]["gameweek_number"] == 3
        assert len(response.data["fixtures"]) == 1

    def test_round_without_gameweek_has_no_fixtures(self, service, rounds):
        response = service.find_round_with_fixtures(rounds[0]["id"], now=NOW)
        assert response.data["status"] == RoundStatus.PAST
        assert response.data["fixtures"] == []

    def test_status_recomputed_from_cached_rows(self, service, rounds):
        service.find_round_with_fixtures(rounds[2]["id"], now=NOW)
        later = NOW.replace(day=3)
        response = service.find_round_with_fixtures(rounds[2]["id"], now=later)
        assert response.data["status"] == RoundStatus.PAST

    def test_cache_is_used_until_forced(self, fake, service, rounds):
        service.find_round_with_fixtures(rounds[2]["id"], now=NOW)
        fake.find("rounds", rounds[2]["id"])["deadline_date"] = "2024-02-01T00:00:00+00:00"

        cached = service.find_round_with_fixtures(rounds[2]["id"], now=NOW)
        refreshed = service.find_round_with_fixtures(rounds[2]["id"], force_refresh=True, now=NOW)

        assert cached.data["deadline_date"] != "2024-02-01T00:00:00+00:00"
        assert refreshed.data["deadline_date"] == "2024-02-01T00:00:00+00:00"
        assert refreshed.data["status"] == RoundStatus.PAST

    def test_clear_cache(self, service, cache, rounds):
        service.find_round_with_fixtures(rounds[2]["id"], now=NOW)
        assert len(cache) > 0
        service.clear_cache()
        assert len(cache) == 0

    def test_missing_round(self, service):
        assert service.find_round_with_fixtures("nope", now=NOW).error.code == ErrorCode.NOT_FOUND

    def test_missing_round_id(self, service):
        assert service.find_round_with_fixtures("").error.code == ErrorCode.VALIDATION_ERROR

    def test_round_without_competition_is_a_database_error(self, fake, service):
        fake.seed("rounds", {"id": "orphan", "competition_id": "gone", "round_number": 1})
        response = service.find_round_with_fixtures("orphan", now=NOW)
        assert response.error.code == ErrorCode.DATABASE_ERROR

    def test_list_rounds_paginates(self, service, rounds):
        response = service.list_rounds("comp-1", page=2, page_size=4)
        assert response.data["total"] == 6
        assert [r["round_number"] for r in response.data["rounds"]] == [5, 6]

    def test_list_rounds_rejects_bad_page(self, service):
        assert service.list_rounds("comp-1", page=0).error.code == ErrorCode.VALIDATION_ERROR

    def test_current_active_round(self, service, rounds):
        response = service.get_current_active_round("comp-1", NOW)
        assert response.data["round_number"] == 3
        assert response.data["status"] == RoundStatus.CURRENT

    def test_current_active_round_after_last_deadline(self, fake, db, config, competition):
        seed_rounds(fake, competition["id"], [-15, -8, -1])
        response = RoundService(db, config).get_current_active_round(competition["id"], NOW)
        assert response.data["round_number"] == 3
        assert response.data["status"] == RoundStatus.PAST

    def test_current_active_round_no_rounds(self, service, competition):
        assert service.get_current_active_round(competition["id"], NOW).error.code == ErrorCode.NOT_FOUND

    def test_classified_rounds(self, service, rounds):
        response = service.get_classified_rounds("comp-1", NOW)
        by_number = {r["round_number"]: r for r in response.data}
        assert by_number[3]["status"] == RoundStatus.CURRENT
        assert by_number[6]["status"] == RoundStatus.UPCOMING
        assert by_number[6]["is_open_for_picks"] is True
        assert by_number[2]["is_open_for_picks"] is False

    def test_classified_rounds_database_error(self, fake, service):
        fake.fail("rounds", "select")
        assert service.get_classified_rounds("comp-1", NOW).error.code == ErrorCode.DATABASE_ERROR
