"""
Scoreboard derivations over plain records.
"""

import pytest

from medalboard.aggregation import (
    UNCATEGORIZED,
    compute_event_results,
    compute_medal_summary,
    compute_team_scores,
)
from medalboard.models import Event, EventCategory, EventStatus, Medal, MedalType, Team

G, S, B = MedalType.GOLD, MedalType.SILVER, MedalType.BRONZE


def make_medals(*specs):
    """specs: (event_id, team_id, medal_type, points)"""
    return [Medal(i, e, t, mt, p) for i, (e, t, mt, p) in enumerate(specs, 1)]


@pytest.fixture
def teams():
    return [Team(1, "Red"), Team(2, "Blue"), Team(3, "Green"), Team(4, "Gold")]


def test_only_published_medals_count(teams):
    medals = make_medals((1, 1, G, 10), (1, 2, S, 7))

    scores = compute_team_scores(teams, medals, published_ids={1})

    by_id = {s.id: s for s in scores}
    assert by_id[1].total_score == 10
    assert by_id[2].total_score == 0
    assert by_id[2].silver_count == 0


def test_tie_breaks_on_gold_then_silver_then_bronze(teams):
    medals = make_medals(
        # Red: 10 from one gold
        (1, 1, G, 10),
        # Blue: 10 from silver + bronze + nonwinner
        (2, 2, S, 7),
        (3, 2, B, 2),
        (4, 2, MedalType.NON_WINNER, 1),
        # Green: 10 from two silvers
        (5, 3, S, 5),
        (6, 3, S, 5),
        # Gold team: 10 from silver + bronze
        (7, 4, S, 6),
        (8, 4, B, 4),
    )

    scores = compute_team_scores(teams, medals, {m.id for m in medals})

    assert [s.name for s in scores] == ["Red", "Green", "Blue", "Gold"]
    assert [s.rank for s in scores] == [1, 2, 3, 4]


def test_exact_ties_keep_store_order_and_distinct_ranks(teams):
    medals = make_medals((1, 3, G, 10), (2, 1, G, 10))

    scores = compute_team_scores(teams, medals, {1, 2})

    assert [(s.name, s.rank) for s in scores] == [
        ("Red", 1),
        ("Green", 2),
        ("Blue", 3),
        ("Gold", 4),
    ]


def test_sort_is_descending_lexicographic(teams):
    medals = make_medals(
        (1, 1, B, 5),
        (2, 2, G, 5),
        (3, 3, S, 9),
        (4, 4, MedalType.NO_ENTRY, 0),
    )

    scores = compute_team_scores(teams, medals, {m.id for m in medals})

    keys = [s.sort_key() for s in scores]
    assert keys == sorted(keys, reverse=True)


def test_non_podium_medals_add_points_but_not_counts(teams):
    medals = make_medals((1, 1, MedalType.NON_WINNER, 1), (2, 1, MedalType.NO_ENTRY, 0))

    red = compute_team_scores(teams, medals, {1, 2})[0]

    assert red.name == "Red"
    assert red.total_score == 1
    assert (red.gold_count, red.silver_count, red.bronze_count) == (0, 0, 0)


def test_teams_without_medals_are_listed(teams):
    scores = compute_team_scores(teams, [], set())

    assert [s.total_score for s in scores] == [0, 0, 0, 0]
    assert [s.rank for s in scores] == [1, 2, 3, 4]


def test_event_results_resolve_winners_and_categories(teams):
    categories = [EventCategory(1, "Literary")]
    events = [
        Event(1, "Debate", category_id=1, status=EventStatus.COMPLETED),
        Event(2, "Dance", category_id=42),
        Event(3, "Quiz"),
    ]
    medals = make_medals((1, 1, G, 10), (1, 2, S, 7), (1, 3, B, 5), (2, 4, G, 10))

    results = compute_event_results(events, categories, teams, medals, {1, 2, 3})

    debate, dance, quiz = results
    assert debate.category == "Literary"
    assert debate.category_id == 1
    assert debate.status == EventStatus.COMPLETED
    assert (debate.gold_team.name, debate.silver_team.name, debate.bronze_team.name) == (
        "Red",
        "Blue",
        "Green",
    )
    # Deleted category falls back; its gold medal is still a draft
    assert dance.category == UNCATEGORIZED
    assert dance.category_id == 0
    assert dance.gold_team is None
    assert quiz.category == UNCATEGORIZED
    assert quiz.to_dict()["goldTeam"] is None


def test_event_results_first_match_in_store_order(teams):
    events = [Event(1, "Relay")]
    medals = make_medals((1, 2, G, 10), (1, 1, G, 10))

    result = compute_event_results(events, [], teams, medals, {1, 2})[0]

    assert result.gold_team.id == 2


def test_event_result_with_missing_team(teams):
    events = [Event(1, "Relay")]
    medals = make_medals((1, 99, G, 10))

    result = compute_event_results(events, [], teams, medals, {1})[0]

    assert result.gold_team is None


def test_medal_summary_counts_published_podium_only():
    medals = make_medals(
        (1, 1, G, 10),
        (1, 2, S, 7),
        (1, 3, MedalType.NON_WINNER, 1),
        (2, 1, B, 5),
        (2, 2, G, 10),
    )

    summary = compute_medal_summary(medals, {1, 2, 3, 4})

    assert summary.to_dict() == {
        "goldCount": 1,
        "silverCount": 1,
        "bronzeCount": 1,
        "totalMedals": 3,
    }
