from datetime import timedelta

import pytest

from lifecycle.gameweeks import GameweekStatusUpdater, compute_gameweek_flags

from conftest import NOW, at, seed_gameweeks


def gameweeks(offsets):
    return [
        {"id": f"gw{i}", "gameweek_number": i, "deadline_time": at(days=offset)}
        for i, offset in enumerate(offsets, start=1)
    ]


def flag_table(plan):
    """gw id -> (current, next, previous, finished)"""
    return {
        gw_id: (f["is_current"], f["is_next"], f["is_previous"], f["finished"])
        for gw_id, f in plan.flags.items()
    }


class TestComputeGameweekFlags:
    def test_mid_season(self):
        plan = compute_gameweek_flags(gameweeks([-14, -7, 1, 8, 15]), NOW)

        assert flag_table(plan) == {
            "gw1": (False, False, False, True),
            "gw2": (False, False, True, True),
            "gw3": (True, False, False, False),
            "gw4": (False, True, False, False),
            "gw5": (False, False, False, False),
        }
        assert plan.current["gameweek_number"] == 3
        assert plan.next["gameweek_number"] == 4
        assert plan.previous["gameweek_number"] == 2

    def test_deadline_equal_to_now_is_current(self):
        plan = compute_gameweek_flags(gameweeks([-7, 0, 7]), NOW)
        assert plan.current["id"] == "gw2"

    def test_sorted_by_deadline_not_input_order(self):
        plan = compute_gameweek_flags(list(reversed(gameweeks([-7, 1, 8]))), NOW)
        assert plan.current["id"] == "gw2"
        assert plan.previous["id"] == "gw1"

    def test_first_gameweek_has_no_previous(self):
        plan = compute_gameweek_flags(gameweeks([1, 8]), NOW)
        assert plan.previous is None
        assert flag_table(plan)["gw1"] == (True, False, False, False)

    def test_season_end_grace_keeps_last_gameweek_current(self):
        plan = compute_gameweek_flags(gameweeks([-20, -13, -6]), NOW)

        assert plan.current["id"] == "gw3"
        assert plan.next is None
        assert flag_table(plan) == {
            "gw1": (False, False, False, True),
            "gw2": (False, False, True, True),
            "gw3": (True, False, False, False),
        }

    def test_season_complete_after_grace(self):
        plan = compute_gameweek_flags(gameweeks([-30, -20, -8]), NOW)

        assert plan.season_complete
        assert plan.current is None
        assert all(f == (False, False, False, True) for f in flag_table(plan).values())

    def test_grace_period_is_configurable(self):
        plan = compute_gameweek_flags(gameweeks([-10, -3]), NOW, timedelta(days=2))
        assert plan.season_complete

    def test_empty(self):
        plan = compute_gameweek_flags([], NOW)
        assert plan.flags == {}
        assert plan.current is None

    def test_flags_are_fully_overwritten(self):
        stale = gameweeks([-7, 1, 8])
        stale[2].update({"is_current": True, "finished": True})
        plan = compute_gameweek_flags(stale, NOW)
        assert flag_table(plan)["gw3"] == (False, True, False, False)


class TestGameweekStatusUpdater:
    @pytest.fixture
    def updater(self, db, config):
        return GameweekStatusUpdater(db, config)

    def test_writes_every_gameweek(self, fake, updater):
        rows = seed_gameweeks(fake, [-14, -7, 1, 8])
        fake.find("gameweeks", rows[3]["id"])["is_current"] = True

        report = updater.update(39, 2023, NOW)

        assert report["success"] is True
        assert report["updated"] == 4
        assert report["current_gameweek"] == 3
        assert report["next_gameweek"] == 4
        assert report["previous_gameweek"] == 2
        stored = {r["gameweek_number"]: r for r in fake.rows("gameweeks")}
        assert stored[3]["is_current"] is True
        assert stored[4]["is_current"] is False
        assert stored[4]["is_next"] is True
        assert stored[1]["finished"] is True
        assert "data_updated_at" in stored[1]

    def test_other_seasons_untouched(self, fake, updater):
        seed_gameweeks(fake, [-7, 1])
        other = seed_gameweeks(fake, [-7, 1], season=2024)

        updater.update(39, 2023, NOW)

        assert all(fake.find("gameweeks", g["id"])["is_current"] is False for g in other)

    def test_no_gameweeks(self, updater):
        report = updater.update(39, 2023, NOW)
        assert report["success"] is True
        assert report["total"] == 0

    def test_update_failures_are_counted(self, fake, updater):
        seed_gameweeks(fake, [-7, 1, 8])
        fake.fail("gameweeks", "update")

        report = updater.update(39, 2023, NOW)

        assert report["success"] is False
        assert report["failed"] == 3
        assert report["updated"] == 0

    def test_fetch_failure(self, fake, updater):
        fake.fail("gameweeks", "select")
        report = updater.update(39, 2023, NOW)
        assert report["success"] is False
        assert "error" in report

    def test_update_all_uses_tracked_leagues(self, fake, updater):
        seed_gameweeks(fake, [-7, 1])
        reports = updater.update_all(now=NOW)
        assert [(r["league"], r["season"]) for r in reports] == [(39, 2023)]
