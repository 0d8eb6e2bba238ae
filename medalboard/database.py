"""
SQLite-backed storage for the medal board.
"""

from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Set

import aiosqlite

from .logger import get_logger
from .models import (
    DEFAULT_POINTS,
    Event,
    EventCategory,
    EventStatus,
    Medal,
    MedalType,
    Publication,
    ScoreSettings,
    Team,
    User,
    isoformat,
    parse_datetime,
    utcnow,
)
from .storage import Storage

log = get_logger("database")

SCHEMA = """
CREATE TABLE IF NOT EXISTS users (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    username TEXT NOT NULL UNIQUE,
    password_hash TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS teams (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL UNIQUE,
    icon TEXT,
    color TEXT
);

CREATE TABLE IF NOT EXISTS event_categories (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL UNIQUE
);

CREATE TABLE IF NOT EXISTS events (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    category_id INTEGER REFERENCES event_categories(id),
    event_date TEXT,
    status TEXT NOT NULL DEFAULT 'UPCOMING'
);

CREATE TABLE IF NOT EXISTS medals (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    event_id INTEGER NOT NULL REFERENCES events(id),
    team_id INTEGER NOT NULL REFERENCES teams(id),
    medal_type TEXT NOT NULL,
    points INTEGER NOT NULL,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS publications (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    published_by TEXT NOT NULL,
    description TEXT,
    medal_count INTEGER NOT NULL,
    published_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS score_settings (
    id INTEGER PRIMARY KEY,
    gold_points INTEGER NOT NULL DEFAULT 10,
    silver_points INTEGER NOT NULL DEFAULT 7,
    bronze_points INTEGER NOT NULL DEFAULT 5,
    non_winner_points INTEGER NOT NULL DEFAULT 1,
    no_entry_points INTEGER NOT NULL DEFAULT 0,
    last_updated TEXT NOT NULL,
    is_published INTEGER NOT NULL DEFAULT 1
);

CREATE TABLE IF NOT EXISTS published_medals (
    medal_id INTEGER PRIMARY KEY REFERENCES medals(id),
    published_at TEXT NOT NULL
);

CREATE UNIQUE INDEX IF NOT EXISTS idx_medal_event_team
ON medals(event_id, team_id);

CREATE INDEX IF NOT EXISTS idx_medal_team
ON medals(team_id);

CREATE INDEX IF NOT EXISTS idx_event_category
ON events(category_id);
"""

SETTINGS_ID = 1


def _team(row: Any) -> Team:
    return Team(id=row["id"], name=row["name"], icon=row["icon"], color=row["color"])


def _event(row: Any) -> Event:
    return Event(
        id=row["id"],
        name=row["name"],
        category_id=row["category_id"],
        event_date=parse_datetime(row["event_date"]),
        status=EventStatus(row["status"]),
    )


def _medal(row: Any) -> Medal:
    return Medal(
        id=row["id"],
        event_id=row["event_id"],
        team_id=row["team_id"],
        medal_type=MedalType(row["medal_type"]),
        points=row["points"],
        created_at=parse_datetime(row["created_at"]),
    )


def _publication(row: Any) -> Publication:
    return Publication(
        id=row["id"],
        published_by=row["published_by"],
        description=row["description"],
        medal_count=row["medal_count"],
        published_at=parse_datetime(row["published_at"]),
    )


def _settings(row: Any) -> ScoreSettings:
    return ScoreSettings(
        id=row["id"],
        gold_points=row["gold_points"],
        silver_points=row["silver_points"],
        bronze_points=row["bronze_points"],
        non_winner_points=row["non_winner_points"],
        no_entry_points=row["no_entry_points"],
        last_updated=parse_datetime(row["last_updated"]),
        is_published=bool(row["is_published"]),
    )


class SQLiteStorage(Storage):
    """Storage backend on a single SQLite file, one connection per operation."""

    def __init__(
        self,
        db_path: str,
        default_points: Optional[Dict[str, int]] = None,
    ) -> None:
        self.db_path = db_path
        self.default_points = dict(DEFAULT_POINTS)
        self.default_points.update(default_points or {})

    def _connect(self) -> aiosqlite.Connection:
        return aiosqlite.connect(self.db_path)

    async def _fetchall(
        self,
        query: str,
        params: Iterable[Any] = (),
    ) -> List[Any]:
        async with self._connect() as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(query, tuple(params))
            return list(await cursor.fetchall())

    async def _fetchone(
        self,
        query: str,
        params: Iterable[Any] = (),
    ) -> Optional[Any]:
        rows = await self._fetchall(query, params)
        return rows[0] if rows else None

    async def init_db(self) -> None:
        """
        Initialize the SQLite database with schema and indexes.

        Creates tables, indexes, and performs schema migrations if needed.
        """
        async with self._connect() as db:
            # Enable WAL mode for better concurrent access
            await db.execute("PRAGMA journal_mode=WAL")
            await db.execute("PRAGMA synchronous=NORMAL")
            await db.executescript(SCHEMA)
            await db.commit()

            await self._migrate_schema(db)

            await self._ensure_settings(db)
            await db.commit()

        log.info("Database ready at %s", self.db_path)

    async def _migrate_schema(
        self,
        db: aiosqlite.Connection,
    ) -> None:
        """
        Handle database schema migrations.

        @param db: Active database connection
        """
        cursor = await db.execute("PRAGMA table_info(score_settings)")
        columns = await cursor.fetchall()
        column_names = [column[1] for column in columns]

        if "no_entry_points" not in column_names:
            log.info("Migrating score_settings to add no_entry_points column...")
            await db.execute(
                "ALTER TABLE score_settings ADD COLUMN no_entry_points INTEGER NOT NULL DEFAULT 0"
            )
            await db.commit()

    # Users

    async def get_user(self, user_id: int) -> Optional[User]:
        row = await self._fetchone("SELECT * FROM users WHERE id = ?", (user_id,))
        return User(row["id"], row["username"], row["password_hash"]) if row else None

    async def get_user_by_username(self, username: str) -> Optional[User]:
        row = await self._fetchone("SELECT * FROM users WHERE username = ?", (username,))
        return User(row["id"], row["username"], row["password_hash"]) if row else None

    async def create_user(self, username: str, password_hash: str) -> User:
        async with self._connect() as db:
            cursor = await db.execute(
                "INSERT INTO users (username, password_hash) VALUES (?, ?)",
                (username, password_hash),
            )
            await db.commit()
            return User(id=cursor.lastrowid, username=username, password_hash=password_hash)

    # Teams

    async def get_all_teams(self) -> List[Team]:
        return [_team(row) for row in await self._fetchall("SELECT * FROM teams ORDER BY id")]

    async def get_team_by_id(self, team_id: int) -> Optional[Team]:
        row = await self._fetchone("SELECT * FROM teams WHERE id = ?", (team_id,))
        return _team(row) if row else None

    async def create_team(
        self,
        name: str,
        icon: Optional[str] = None,
        color: Optional[str] = None,
    ) -> Optional[Team]:
        async with self._connect() as db:
            try:
                cursor = await db.execute(
                    "INSERT INTO teams (name, icon, color) VALUES (?, ?, ?)",
                    (name, icon, color),
                )
            except aiosqlite.IntegrityError:
                log.info("Rejected duplicate team name %r", name)
                return None
            await db.commit()
            return Team(id=cursor.lastrowid, name=name, icon=icon, color=color)

    async def update_team(self, team_id: int, **fields: Any) -> Optional[Team]:
        changes = {k: v for k, v in fields.items() if k in ("name", "icon", "color")}
        existing = await self.get_team_by_id(team_id)
        if existing is None:
            return None
        if not changes:
            return existing

        assignments = ", ".join(f"{column} = ?" for column in changes)
        async with self._connect() as db:
            try:
                await db.execute(
                    f"UPDATE teams SET {assignments} WHERE id = ?",
                    (*changes.values(), team_id),
                )
            except aiosqlite.IntegrityError:
                log.info("Rejected rename of team %d to duplicate %r", team_id, changes.get("name"))
                return None
            await db.commit()

        return await self.get_team_by_id(team_id)

    async def _delete_unreferenced(
        self,
        table: str,
        row_id: int,
        dependent_table: str,
        dependent_column: str,
    ) -> bool:
        async with self._connect() as db:
            cursor = await db.execute(
                f"SELECT 1 FROM {dependent_table} WHERE {dependent_column} = ? LIMIT 1",
                (row_id,),
            )
            if await cursor.fetchone():
                log.info("%s %d is still referenced by %s, not deleting", table, row_id, dependent_table)
                return False

            cursor = await db.execute(f"DELETE FROM {table} WHERE id = ?", (row_id,))
            await db.commit()
            return cursor.rowcount > 0

    async def delete_team(self, team_id: int) -> bool:
        return await self._delete_unreferenced("teams", team_id, "medals", "team_id")

    # Event categories

    async def get_all_event_categories(self) -> List[EventCategory]:
        rows = await self._fetchall("SELECT * FROM event_categories ORDER BY id")
        return [EventCategory(id=row["id"], name=row["name"]) for row in rows]

    async def get_category_by_id(self, category_id: int) -> Optional[EventCategory]:
        row = await self._fetchone("SELECT * FROM event_categories WHERE id = ?", (category_id,))
        return EventCategory(id=row["id"], name=row["name"]) if row else None

    async def create_event_category(self, name: str) -> Optional[EventCategory]:
        async with self._connect() as db:
            try:
                cursor = await db.execute("INSERT INTO event_categories (name) VALUES (?)", (name,))
            except aiosqlite.IntegrityError:
                log.info("Rejected duplicate category name %r", name)
                return None
            await db.commit()
            return EventCategory(id=cursor.lastrowid, name=name)

    async def delete_event_category(self, category_id: int) -> bool:
        return await self._delete_unreferenced("event_categories", category_id, "events", "category_id")

    # Events

    async def get_all_events(self) -> List[Event]:
        return [_event(row) for row in await self._fetchall("SELECT * FROM events ORDER BY id")]

    async def get_event_by_id(self, event_id: int) -> Optional[Event]:
        row = await self._fetchone("SELECT * FROM events WHERE id = ?", (event_id,))
        return _event(row) if row else None

    async def create_event(
        self,
        name: str,
        category_id: Optional[int] = None,
        event_date: Optional[datetime] = None,
        status: EventStatus = EventStatus.UPCOMING,
    ) -> Event:
        status = EventStatus(status)
        async with self._connect() as db:
            cursor = await db.execute(
                "INSERT INTO events (name, category_id, event_date, status) VALUES (?, ?, ?, ?)",
                (name, category_id, isoformat(event_date), status.value),
            )
            await db.commit()
            return Event(
                id=cursor.lastrowid,
                name=name,
                category_id=category_id,
                event_date=event_date,
                status=status,
            )

    async def update_event_status(
        self,
        event_id: int,
        status: EventStatus,
    ) -> Optional[Event]:
        async with self._connect() as db:
            cursor = await db.execute(
                "UPDATE events SET status = ? WHERE id = ?",
                (EventStatus(status).value, event_id),
            )
            await db.commit()
            if cursor.rowcount == 0:
                return None
        return await self.get_event_by_id(event_id)

    async def delete_event(self, event_id: int) -> bool:
        return await self._delete_unreferenced("events", event_id, "medals", "event_id")

    # Medals

    async def get_all_medals(self) -> List[Medal]:
        return [_medal(row) for row in await self._fetchall("SELECT * FROM medals ORDER BY id")]

    async def get_medal_by_id(self, medal_id: int) -> Optional[Medal]:
        row = await self._fetchone("SELECT * FROM medals WHERE id = ?", (medal_id,))
        return _medal(row) if row else None

    async def get_medals_by_event_id(self, event_id: int) -> List[Medal]:
        rows = await self._fetchall(
            "SELECT * FROM medals WHERE event_id = ? ORDER BY id",
            (event_id,),
        )
        return [_medal(row) for row in rows]

    async def create_medal(
        self,
        event_id: int,
        team_id: int,
        medal_type: MedalType,
        points: int,
    ) -> Medal:
        medal_type = MedalType(medal_type)

        async with self._connect() as db:
            db.row_factory = aiosqlite.Row
            await db.execute(
                """
                INSERT INTO medals (event_id, team_id, medal_type, points, created_at)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(event_id, team_id)
                DO UPDATE SET medal_type = excluded.medal_type, points = excluded.points
                """,
                (event_id, team_id, medal_type.value, points, isoformat(utcnow())),
            )
            cursor = await db.execute(
                "SELECT * FROM medals WHERE event_id = ? AND team_id = ?",
                (event_id, team_id),
            )
            row = await cursor.fetchone()

            # Edited medals go back to draft
            await db.execute("DELETE FROM published_medals WHERE medal_id = ?", (row["id"],))
            await db.commit()

        return _medal(row)

    async def delete_medal(self, medal_id: int) -> bool:
        async with self._connect() as db:
            await db.execute("DELETE FROM published_medals WHERE medal_id = ?", (medal_id,))
            cursor = await db.execute("DELETE FROM medals WHERE id = ?", (medal_id,))
            await db.commit()
            return cursor.rowcount > 0

    # Publications and ledger

    async def get_all_publications(self) -> List[Publication]:
        rows = await self._fetchall(
            "SELECT * FROM publications ORDER BY published_at DESC, id DESC"
        )
        return [_publication(row) for row in rows]

    async def create_publication(
        self,
        published_by: str,
        medal_count: int,
        description: Optional[str] = None,
    ) -> Publication:
        published_at = utcnow()
        async with self._connect() as db:
            cursor = await db.execute(
                "INSERT INTO publications (published_by, description, medal_count, published_at) "
                "VALUES (?, ?, ?, ?)",
                (published_by, description, medal_count, isoformat(published_at)),
            )
            await db.commit()
            return Publication(
                id=cursor.lastrowid,
                published_by=published_by,
                description=description,
                medal_count=medal_count,
                published_at=published_at,
            )

    async def get_published_medal_ids(self) -> Set[int]:
        rows = await self._fetchall("SELECT medal_id FROM published_medals")
        return {row["medal_id"] for row in rows}

    async def commit_publication(
        self,
        medal_ids: Iterable[int],
        published_by: str,
        description: Optional[str] = None,
    ) -> Publication:
        medal_ids = list(medal_ids)
        now = utcnow()
        stamp = isoformat(now)

        # Single transaction: nothing is committed unless every step succeeds
        async with self._connect() as db:
            await self._ensure_settings(db)
            cursor = await db.execute(
                "INSERT INTO publications (published_by, description, medal_count, published_at) "
                "VALUES (?, ?, ?, ?)",
                (published_by, description, len(medal_ids), stamp),
            )
            publication_id = cursor.lastrowid

            await db.executemany(
                "INSERT OR IGNORE INTO published_medals (medal_id, published_at) VALUES (?, ?)",
                [(medal_id, stamp) for medal_id in medal_ids],
            )
            await db.execute(
                "UPDATE score_settings SET is_published = 1, last_updated = ? WHERE id = ?",
                (stamp, SETTINGS_ID),
            )
            await db.commit()

        return Publication(
            id=publication_id,
            published_by=published_by,
            description=description,
            medal_count=len(medal_ids),
            published_at=now,
        )

    # Score settings

    async def _ensure_settings(
        self,
        db: aiosqlite.Connection,
    ) -> None:
        points = self.default_points
        await db.execute(
            "INSERT OR IGNORE INTO score_settings (id, gold_points, silver_points, bronze_points, "
            "non_winner_points, no_entry_points, last_updated, is_published) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, 1)",
            (
                SETTINGS_ID,
                points["gold_points"],
                points["silver_points"],
                points["bronze_points"],
                points["non_winner_points"],
                points["no_entry_points"],
                isoformat(utcnow()),
            ),
        )

    async def get_score_settings(self) -> Optional[ScoreSettings]:
        query = "SELECT * FROM score_settings WHERE id = ?"
        row = await self._fetchone(query, (SETTINGS_ID,))
        if row is None:
            # Seeded by init_db; only a wiped table gets here
            async with self._connect() as db:
                await self._ensure_settings(db)
                await db.commit()
            row = await self._fetchone(query, (SETTINGS_ID,))
        return _settings(row) if row else None

    async def update_score_settings(self, **fields: Any) -> ScoreSettings:
        changes = {k: v for k, v in fields.items() if k in ScoreSettings.EDITABLE}
        if "is_published" in changes:
            changes["is_published"] = 1 if changes["is_published"] else 0
        changes["last_updated"] = isoformat(utcnow())

        assignments = ", ".join(f"{column} = ?" for column in changes)
        async with self._connect() as db:
            await self._ensure_settings(db)
            await db.execute(
                f"UPDATE score_settings SET {assignments} WHERE id = ?",
                (*changes.values(), SETTINGS_ID),
            )
            await db.commit()

        return await self.get_score_settings()
