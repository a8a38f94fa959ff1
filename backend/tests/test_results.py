import pytest

from lifecycle.results import FixtureOutcome, ResultResolver, losing_sides

from conftest import seed_gameweeks, seed_rounds


@pytest.fixture
def resolver(db):
    return ResultResolver(db)


@pytest.fixture
def setup(fake, competition, teams):
    rounds = seed_rounds(fake, competition["id"], [-14, -7, -1])
    gameweeks = seed_gameweeks(fake, [-14, -7, -1])
    return {"rounds": rounds, "gameweeks": gameweeks}


def seed_fixture(fake, gameweek_id, home, away, home_score, away_score, **extra):
    row = {
        "external_id": f"{home}-{away}",
        "home_team_id": home,
        "away_team_id": away,
        "home_score": home_score,
        "away_score": away_score,
        "status": "FT",
        "kickoff_time": "2024-02-29T15:00:00+00:00",
        "gameweek_id": gameweek_id,
        "results_processed": False,
    }
    row.update(extra)
    return fake.seed("fixtures", row)[0]


def seed_picks(fake, round_id, *team_ids, status="locked"):
    return fake.seed("picks", *[
        {"user_id": f"user-{i}", "round_id": round_id, "team_id": team_id, "status": status}
        for i, team_id in enumerate(team_ids)
    ])


def pick_statuses(fake, picks):
    return [fake.find("picks", p["id"])["status"] for p in picks]


@pytest.mark.parametrize("home,away,expected", [
    (3, 1, ["away"]),
    (0, 2, ["home"]),
    (2, 2, ["home", "away"]),
    (0, 0, ["home", "away"]),
])
def test_losing_sides(home, away, expected):
    assert losing_sides(home, away, "home", "away") == expected


class TestProcessResults:
    def test_home_win_eliminates_away_pickers(self, fake, resolver, setup):
        round_id = setup["rounds"][2]["id"]
        home_pick, away_pick, other = seed_picks(fake, round_id, "team-ars", "team-che", "team-liv")
        fixture = seed_fixture(fake, setup["gameweeks"][2]["id"], 42, 49, 3, 1)

        summary = resolver.process_results()

        assert pick_statuses(fake, [home_pick, away_pick, other]) == ["locked", "eliminated", "locked"]
        assert fake.find("fixtures", fixture["id"])["results_processed"] is True
        assert summary.processed == 1
        assert summary.eliminated == 1

    def test_draw_eliminates_both_sides(self, fake, resolver, setup):
        round_id = setup["rounds"][2]["id"]
        picks = seed_picks(fake, round_id, "team-ars", "team-che", "team-liv")
        seed_fixture(fake, setup["gameweeks"][2]["id"], "42", "49", 2, 2)

        summary = resolver.process_results()

        assert pick_statuses(fake, picks) == ["eliminated", "eliminated", "locked"]
        assert summary.eliminated == 2

    def test_active_picks_are_eliminated(self, fake, resolver, setup):
        round_id = setup["rounds"][2]["id"]
        picks = seed_picks(fake, round_id, "team-che", status="active")
        seed_fixture(fake, setup["gameweeks"][2]["id"], 42, 49, 1, 0)

        resolver.process_results()

        assert pick_statuses(fake, picks) == ["eliminated"]

    def test_only_the_matching_round_is_touched(self, fake, resolver, setup):
        earlier = seed_picks(fake, setup["rounds"][1]["id"], "team-che")
        seed_fixture(fake, setup["gameweeks"][2]["id"], 42, 49, 1, 0)

        resolver.process_results()

        assert pick_statuses(fake, earlier) == ["locked"]

    def test_reprocessing_is_idempotent(self, fake, resolver, setup):
        round_id = setup["rounds"][2]["id"]
        picks = seed_picks(fake, round_id, "team-ars", "team-che")
        fixture = seed_fixture(fake, setup["gameweeks"][2]["id"], 42, 49, 3, 1)
        resolver.process_results()

        # Force the fixture back through, as a crashed run would leave it
        fake.find("fixtures", fixture["id"])["results_processed"] = False
        summary = resolver.process_results()

        assert pick_statuses(fake, picks) == ["locked", "eliminated"]
        assert summary.eliminated == 0

    def test_processed_fixtures_are_ignored(self, fake, resolver, setup):
        picks = seed_picks(fake, setup["rounds"][2]["id"], "team-che")
        seed_fixture(fake, setup["gameweeks"][2]["id"], 42, 49, 3, 1, results_processed=True)

        summary = resolver.process_results()

        assert pick_statuses(fake, picks) == ["locked"]
        assert summary.processed == 0

    def test_missing_round_is_skipped_and_retried(self, fake, resolver, competition, teams):
        gameweek = seed_gameweeks(fake, [-1])[0]
        fixture = seed_fixture(fake, gameweek["id"], 42, 49, 1, 0)

        summary = resolver.process_results()

        assert summary.skipped == 1
        assert summary.fixtures[0].reason == "no_round"
        assert fake.find("fixtures", fixture["id"])["results_processed"] is False

    def test_missing_team_mapping_still_marks_processed(self, fake, resolver, setup):
        picks = seed_picks(fake, setup["rounds"][2]["id"], "team-ars")
        fixture = seed_fixture(fake, setup["gameweeks"][2]["id"], 42, 999, 0, 1)

        summary = resolver.process_results()

        assert pick_statuses(fake, picks) == ["locked"]
        assert fake.find("fixtures", fixture["id"])["results_processed"] is True
        assert summary.fixtures[0].reason == "team_mapping_missing"

    def test_null_scores_are_skipped(self, fake, resolver, setup):
        fixture = seed_fixture(fake, setup["gameweeks"][2]["id"], 42, 49, None, None)

        summary = resolver.process_results()

        assert summary.skipped == 1
        assert fake.find("fixtures", fixture["id"])["results_processed"] is False

    def test_failed_elimination_leaves_fixture_unmarked(self, fake, resolver, setup):
        seed_picks(fake, setup["rounds"][2]["id"], "team-che")
        first = seed_fixture(fake, setup["gameweeks"][2]["id"], 42, 49, 1, 0)
        fake.fail("picks", "update")

        summary = resolver.process_results()

        assert summary.failed == 1
        assert summary.fixtures[0].outcome == FixtureOutcome.FAILED
        assert fake.find("fixtures", first["id"])["results_processed"] is False

    def test_one_failure_does_not_stop_the_batch(self, fake, resolver, setup):
        picks = seed_picks(fake, setup["rounds"][2]["id"], "team-che")
        seed_fixture(fake, "gw-missing", 42, 49, 1, 0, kickoff_time="2024-02-29T12:00:00+00:00")
        seed_fixture(fake, setup["gameweeks"][2]["id"], 42, 49, 1, 0)

        summary = resolver.process_results()

        assert summary.skipped == 1
        assert summary.processed == 1
        assert pick_statuses(fake, picks) == ["eliminated"]

    def test_limits_to_given_competition(self, fake, resolver, setup, competition):
        other = fake.seed("competitions", {**competition, "id": "comp-2"})[0]
        other_round = seed_rounds(fake, other["id"], [-14, -7, -1])[2]
        other_picks = seed_picks(fake, other_round["id"], "team-che")
        seed_fixture(fake, setup["gameweeks"][2]["id"], 42, 49, 1, 0)

        resolver.process_results(competition_id="comp-1")

        assert pick_statuses(fake, other_picks) == ["locked"]

    def test_all_active_competitions_by_default(self, fake, resolver, setup, competition):
        other = fake.seed("competitions", {**competition, "id": "comp-2"})[0]
        other_round = seed_rounds(fake, other["id"], [-14, -7, -1])[2]
        other_picks = seed_picks(fake, other_round["id"], "team-che")
        seed_fixture(fake, setup["gameweeks"][2]["id"], 42, 49, 1, 0)

        summary = resolver.process_results()

        assert pick_statuses(fake, other_picks) == ["eliminated"]
        assert summary.to_dict()["eliminated"] == 1

    def test_nothing_to_do(self, resolver, setup):
        summary = resolver.process_results()
        assert summary.to_dict() == {
            "processed": 0, "skipped": 0, "failed": 0, "eliminated": 0, "fixtures": []
        }

    def test_other_season_competition_is_untouched(self, fake, resolver, setup, competition):
        next_season = fake.seed("competitions", {
            **competition, "id": "comp-2024", "start_date": "2024-08-01T00:00:00+00:00"
        })[0]
        this_season_picks = seed_picks(fake, setup["rounds"][0]["id"], "team-ars")
        next_season_round = seed_rounds(fake, next_season["id"], [-1])[0]
        next_season_picks = seed_picks(fake, next_season_round["id"], "team-ars")
        gameweek_2024 = seed_gameweeks(fake, [-1], season=2024)[0]
        seed_fixture(fake, gameweek_2024["id"], 42, 49, 0, 1)

        summary = resolver.process_results()

        assert summary.eliminated == 1
        assert pick_statuses(fake, this_season_picks) == ["locked"]
        assert pick_statuses(fake, next_season_picks) == ["eliminated"]

    def test_competition_without_league_mapping_is_untouched(self, fake, resolver, setup):
        other = fake.seed("competitions", {"id": "comp-x", "title": "Office Cup", "status": "active"})[0]
        other_round = seed_rounds(fake, other["id"], [-14, -7, -1])[2]
        other_picks = seed_picks(fake, other_round["id"], "team-che")
        seed_fixture(fake, setup["gameweeks"][2]["id"], 42, 49, 1, 0)

        resolver.process_results()

        assert pick_statuses(fake, other_picks) == ["locked"]
