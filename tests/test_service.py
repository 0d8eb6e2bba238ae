"""
Publish workflow and scoreboard behaviour through the MedalBoard facade.
"""

import asyncio

import pytest

from medalboard.errors import SettingsMissingError
from medalboard.models import EventStatus, MedalType
from medalboard.service import MedalBoard, hash_password, verify_password
from medalboard.storage import MemoryStorage


async def test_red_blue_chess_scenario(board, chess):
    red, blue, event = chess
    assert event.status == EventStatus.UPCOMING

    await board.create_medal(event.id, red.id, MedalType.GOLD, 10)
    await board.create_medal(event.id, blue.id, MedalType.SILVER, 7)

    assert len(await board.get_unpublished_changes()) == 2
    assert [s.total_score for s in await board.get_team_scores()] == [0, 0]

    await board.publish_scores()

    first, second = await board.get_team_scores()
    assert (first.name, first.rank, first.total_score, first.gold_count) == ("Red", 1, 10, 1)
    assert (second.name, second.rank, second.total_score, second.silver_count) == ("Blue", 2, 7, 1)

    summary = await board.get_medal_summary()
    assert (summary.gold_count, summary.silver_count, summary.bronze_count) == (1, 1, 0)
    assert summary.total_medals == 2
    assert await board.get_unpublished_changes() == []

    publications = await board.get_all_publications()
    assert len(publications) == 1
    assert publications[0].medal_count == 2
    assert publications[0].published_by == "festadmin"
    assert publications[0].description == "Published 2 medal changes"


async def test_publish_on_clean_state_still_logs(board, chess):
    red, _, event = chess
    await board.create_medal(event.id, red.id, MedalType.GOLD, 10)

    await board.publish_scores()
    assert await board.get_unpublished_changes() == []
    await board.publish_scores(published_by="someone")
    assert await board.get_unpublished_changes() == []

    latest, earlier = await board.get_all_publications()
    assert earlier.medal_count == 1
    assert latest.medal_count == 0
    assert latest.published_by == "someone"


async def test_publish_updates_settings(board, chess):
    await board.update_score_settings(is_published=False)
    before = await board.get_score_settings()

    settings = await board.publish_scores()

    assert settings.is_published is True
    assert settings.last_updated >= before.last_updated


async def test_edit_after_publish_hides_change_until_next_publish(board, chess):
    red, blue, event = chess
    await board.create_medal(event.id, red.id, MedalType.GOLD, 10)
    await board.create_medal(event.id, blue.id, MedalType.SILVER, 7)
    await board.publish_scores()

    edited = await board.create_medal(event.id, red.id, MedalType.BRONZE, 5)

    assert [m.id for m in await board.get_unpublished_changes()] == [edited.id]
    # The edited medal left the public board entirely
    scores = {s.name: s for s in await board.get_team_scores()}
    assert scores["Red"].total_score == 0
    assert scores["Blue"].total_score == 7

    await board.publish_scores()
    scores = {s.name: s for s in await board.get_team_scores()}
    assert (scores["Red"].total_score, scores["Red"].bronze_count) == (5, 1)


async def test_event_results_follow_publication(board, chess):
    red, blue, event = chess
    await board.create_medal(event.id, red.id, MedalType.GOLD, 10)

    (result,) = await board.get_event_results()
    assert result.gold_team is None

    await board.publish_scores()
    (result,) = await board.get_event_results()
    assert result.gold_team.name == "Red"
    assert result.category == "Uncategorized"


async def test_points_default_to_settings(board, chess):
    red, blue, event = chess
    await board.update_score_settings(gold_points=25)

    gold = await board.create_medal(event.id, red.id, MedalType.GOLD)
    no_entry = await board.create_medal(event.id, blue.id, MedalType.NO_ENTRY)

    assert gold.points == 25
    assert no_entry.points == 0


async def test_record_event_results_marks_event_completed(board, chess):
    red, blue, event = chess

    medals = await board.record_event_results(
        event.id, {red.id: MedalType.GOLD, blue.id: MedalType.NON_WINNER}
    )

    assert [(m.team_id, m.points) for m in medals] == [(red.id, 10), (blue.id, 1)]
    assert (await board.get_event_by_id(event.id)).status == EventStatus.COMPLETED
    assert len(await board.get_unpublished_changes()) == 2


async def test_record_results_for_unknown_event(board, chess):
    red, _, _ = chess
    assert await board.record_event_results(999, {red.id: MedalType.GOLD}) is None


async def test_concurrent_assignments_keep_one_medal(board, chess):
    red, _, event = chess

    medals = await asyncio.gather(
        *(board.create_medal(event.id, red.id, t, 1) for t in MedalType)
    )

    assert len({m.id for m in medals}) == 1
    assert len(await board.get_all_medals()) == 1


async def test_concurrent_publishes_commit_each_medal_once(board, chess):
    red, blue, event = chess
    await board.create_medal(event.id, red.id, MedalType.GOLD, 10)
    await board.create_medal(event.id, blue.id, MedalType.SILVER, 7)

    await asyncio.gather(board.publish_scores(), board.publish_scores())

    counts = sorted(p.medal_count for p in await board.get_all_publications())
    assert counts == [0, 2]
    assert await board.get_unpublished_changes() == []


async def test_deleting_guarded_team_keeps_it(board, chess):
    red, _, event = chess
    await board.create_medal(event.id, red.id, MedalType.GOLD, 10)

    assert await board.delete_team(red.id) is False
    assert red.id in [t.id for t in await board.get_all_teams()]


async def test_team_delete_racing_medal_leaves_no_orphan(board, chess):
    red, _, event = chess

    deleted, medal = await asyncio.gather(
        board.delete_team(red.id),
        board.create_medal(event.id, red.id, MedalType.GOLD, 10),
    )

    team_ids = {t.id for t in await board.get_all_teams()}
    assert all(m.team_id in team_ids for m in await board.get_all_medals())
    assert deleted is (medal is None)


async def test_event_delete_racing_medal_leaves_no_orphan(board, chess):
    red, _, event = chess

    deleted, medal = await asyncio.gather(
        board.delete_event(event.id),
        board.create_medal(event.id, red.id, MedalType.GOLD, 10),
    )

    event_ids = {e.id for e in await board.get_all_events()}
    assert all(m.event_id in event_ids for m in await board.get_all_medals())
    assert deleted is (medal is None)


async def test_medal_for_unknown_event_or_team(board, chess):
    red, _, event = chess

    assert await board.create_medal(999, red.id, MedalType.GOLD, 10) is None
    assert await board.create_medal(event.id, 999, MedalType.GOLD, 10) is None
    assert await board.get_all_medals() == []


async def test_record_results_with_unknown_team_records_nothing(board, chess):
    red, _, event = chess

    result = await board.record_event_results(event.id, {red.id: MedalType.GOLD, 999: MedalType.SILVER})

    assert result is None
    assert await board.get_all_medals() == []
    assert (await board.get_event_by_id(event.id)).status == EventStatus.UPCOMING


async def test_bootstrap_is_idempotent(board):
    await board.bootstrap("festadmin", "secret", ["Cultural", "Literary"])
    await board.bootstrap("festadmin", "other", ["Cultural", "Literary"])

    names = [c.name for c in await board.get_all_event_categories()]
    assert names == ["Cultural", "Literary"]
    assert await board.authenticate("festadmin", "secret") is not None
    assert await board.authenticate("festadmin", "other") is None
    assert await board.authenticate("nobody", "secret") is None


def test_password_hash_roundtrip():
    hashed = hash_password("ArCuAdmin")

    assert "ArCuAdmin" not in hashed
    assert verify_password("ArCuAdmin", hashed)
    assert not verify_password("arcuadmin", hashed)
    assert hash_password("ArCuAdmin") != hashed


class SettingsLessStorage(MemoryStorage):
    async def get_score_settings(self):
        return None


async def test_missing_settings_fails_the_call():
    board = MedalBoard(SettingsLessStorage())
    await board.create_team("Red")

    with pytest.raises(SettingsMissingError):
        await board.get_team_scores()
    # Other reads are unaffected
    assert len(await board.get_all_teams()) == 1
