"""
Storage contract tests, run against every backend.
"""

import aiosqlite

from medalboard.database import SQLiteStorage
from medalboard.models import EventStatus, MedalType


async def test_second_assignment_overwrites_same_row(storage):
    team = await storage.create_team("Red")
    event = await storage.create_event("Chess")

    first = await storage.create_medal(event.id, team.id, MedalType.SILVER, 7)
    second = await storage.create_medal(event.id, team.id, MedalType.GOLD, 10)

    assert second.id == first.id
    assert second.created_at == first.created_at
    medals = await storage.get_all_medals()
    assert len(medals) == 1
    assert medals[0].medal_type == MedalType.GOLD
    assert medals[0].points == 10


async def test_new_medals_start_unpublished(storage):
    team = await storage.create_team("Red")
    event = await storage.create_event("Chess")
    medal = await storage.create_medal(event.id, team.id, MedalType.GOLD, 10)

    assert [m.id for m in await storage.get_unpublished_changes()] == [medal.id]
    assert await storage.get_published_medal_ids() == set()


async def test_editing_published_medal_returns_it_to_draft(storage):
    team = await storage.create_team("Red")
    event = await storage.create_event("Chess")
    medal = await storage.create_medal(event.id, team.id, MedalType.GOLD, 10)
    await storage.commit_publication([medal.id], "admin")
    assert await storage.get_unpublished_changes() == []

    await storage.create_medal(event.id, team.id, MedalType.BRONZE, 5)

    assert [m.id for m in await storage.get_unpublished_changes()] == [medal.id]
    assert medal.id not in await storage.get_published_medal_ids()


async def test_unpublished_changes_keep_store_order(storage):
    teams = [await storage.create_team(name) for name in ("C", "A", "B")]
    event = await storage.create_event("Relay")
    for team in teams:
        await storage.create_medal(event.id, team.id, MedalType.NON_WINNER, 1)

    pending = await storage.get_unpublished_changes()
    assert [m.team_id for m in pending] == [t.id for t in teams]


async def test_delete_team_with_medals_is_rejected(storage):
    team = await storage.create_team("Red")
    event = await storage.create_event("Chess")
    await storage.create_medal(event.id, team.id, MedalType.GOLD, 10)

    assert await storage.delete_team(team.id) is False
    assert [t.id for t in await storage.get_all_teams()] == [team.id]


async def test_delete_team_without_medals(storage):
    team = await storage.create_team("Red")

    assert await storage.delete_team(team.id) is True
    assert await storage.get_all_teams() == []
    assert await storage.delete_team(team.id) is False


async def test_delete_event_with_medals_is_rejected(storage):
    team = await storage.create_team("Red")
    event = await storage.create_event("Chess")
    medal = await storage.create_medal(event.id, team.id, MedalType.GOLD, 10)

    assert await storage.delete_event(event.id) is False

    assert await storage.delete_medal(medal.id) is True
    assert await storage.delete_event(event.id) is True
    assert await storage.get_event_by_id(event.id) is None


async def test_delete_category_with_events_is_rejected(storage):
    category = await storage.create_event_category("Literary")
    event = await storage.create_event("Debate", category_id=category.id)

    assert await storage.delete_event_category(category.id) is False
    assert await storage.get_category_by_id(category.id) is not None

    await storage.delete_event(event.id)
    assert await storage.delete_event_category(category.id) is True


async def test_delete_medal_clears_ledger(storage):
    team = await storage.create_team("Red")
    event = await storage.create_event("Chess")
    medal = await storage.create_medal(event.id, team.id, MedalType.GOLD, 10)
    await storage.commit_publication([medal.id], "admin")

    assert await storage.delete_medal(medal.id) is True
    assert await storage.get_published_medal_ids() == set()
    assert await storage.delete_medal(medal.id) is False


async def test_duplicate_names_are_rejected_without_raising(storage):
    red = await storage.create_team("Red")
    blue = await storage.create_team("Blue")

    assert await storage.create_team("Red") is None
    assert await storage.update_team(blue.id, name="Red") is None
    assert (await storage.get_team_by_id(blue.id)).name == "Blue"

    assert await storage.create_event_category("Cultural") is not None
    assert await storage.create_event_category("Cultural") is None
    assert len(await storage.get_all_teams()) == 2
    assert (await storage.update_team(red.id, color="#f00")).color == "#f00"


async def test_update_team_unknown_id(storage):
    assert await storage.update_team(999, name="Ghost") is None


async def test_update_event_status(storage):
    event = await storage.create_event("Chess")

    updated = await storage.update_event_status(event.id, EventStatus.ONGOING)

    assert updated.status == EventStatus.ONGOING
    assert (await storage.get_event_by_id(event.id)).status == EventStatus.ONGOING
    assert await storage.update_event_status(999, EventStatus.COMPLETED) is None


async def test_medals_by_event(storage):
    red = await storage.create_team("Red")
    blue = await storage.create_team("Blue")
    chess = await storage.create_event("Chess")
    quiz = await storage.create_event("Quiz")
    await storage.create_medal(chess.id, red.id, MedalType.GOLD, 10)
    await storage.create_medal(quiz.id, blue.id, MedalType.GOLD, 10)

    medals = await storage.get_medals_by_event_id(chess.id)
    assert [(m.event_id, m.team_id) for m in medals] == [(chess.id, red.id)]


async def test_settings_created_with_defaults(storage):
    settings = await storage.get_score_settings()

    assert (
        settings.gold_points,
        settings.silver_points,
        settings.bronze_points,
        settings.non_winner_points,
        settings.no_entry_points,
    ) == (10, 7, 5, 1, 0)
    assert settings.is_published is True


async def test_update_settings_merges_and_stamps(storage):
    before = await storage.get_score_settings()

    after = await storage.update_score_settings(gold_points=12, unknown_field=3)

    assert after.gold_points == 12
    assert after.silver_points == before.silver_points
    assert after.last_updated >= before.last_updated


async def test_commit_publication_is_idempotent_for_members(storage):
    team = await storage.create_team("Red")
    event = await storage.create_event("Chess")
    medal = await storage.create_medal(event.id, team.id, MedalType.GOLD, 10)
    await storage.update_score_settings(is_published=False)

    first = await storage.commit_publication([medal.id], "admin", "first")
    second = await storage.commit_publication([medal.id], "admin", "again")

    assert first.medal_count == 1
    assert second.medal_count == 1
    assert await storage.get_published_medal_ids() == {medal.id}
    assert (await storage.get_score_settings()).is_published is True


async def test_publications_are_listed_newest_first(storage):
    first = await storage.create_publication("admin", 3, "first")
    second = await storage.create_publication("admin", 0, "second")

    publications = await storage.get_all_publications()

    assert [p.id for p in publications] == [second.id, first.id]
    assert (await storage.get_latest_publication()).id == second.id


async def test_latest_publication_when_empty(storage):
    assert await storage.get_latest_publication() is None


async def test_users(storage):
    user = await storage.create_user("admin", "salt$hash")

    assert (await storage.get_user(user.id)).username == "admin"
    assert (await storage.get_user_by_username("admin")).id == user.id
    assert await storage.get_user_by_username("nobody") is None


async def test_sqlite_init_seeds_settings_row(tmp_path):
    path = str(tmp_path / "seed.db")
    storage = SQLiteStorage(path, default_points={"gold_points": 12})
    await storage.init_db()

    async with aiosqlite.connect(path) as db:
        cursor = await db.execute("SELECT gold_points FROM score_settings")
        assert await cursor.fetchall() == [(12,)]

        # Settings reads stay plain SELECTs while another writer holds the lock
        await db.execute("BEGIN IMMEDIATE")
        settings = await storage.get_score_settings()
        await db.rollback()

    assert settings.gold_points == 12


async def test_sqlite_settings_reseeded_when_row_missing(tmp_path):
    path = str(tmp_path / "seed.db")
    storage = SQLiteStorage(path)
    await storage.init_db()
    async with aiosqlite.connect(path) as db:
        await db.execute("DELETE FROM score_settings")
        await db.commit()

    settings = await storage.get_score_settings()

    assert settings.gold_points == 10
