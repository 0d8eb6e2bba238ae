"""
Storage interface for the medal board and its in-memory implementation.

The aggregation and publishing logic only talks to ``Storage``, so the
in-memory store and the SQLite store are interchangeable.
"""

from abc import ABC, abstractmethod
from dataclasses import replace
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Set

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
    utcnow,
)

log = get_logger("storage")


class Storage(ABC):
    """Capability interface shared by every storage backend."""

    # Users
    @abstractmethod
    async def get_user(self, user_id: int) -> Optional[User]: ...

    @abstractmethod
    async def get_user_by_username(self, username: str) -> Optional[User]: ...

    @abstractmethod
    async def create_user(self, username: str, password_hash: str) -> User: ...

    # Teams
    @abstractmethod
    async def get_all_teams(self) -> List[Team]: ...

    @abstractmethod
    async def get_team_by_id(self, team_id: int) -> Optional[Team]: ...

    @abstractmethod
    async def create_team(
        self,
        name: str,
        icon: Optional[str] = None,
        color: Optional[str] = None,
    ) -> Optional[Team]:
        """
        Create a team.

        @return: The new team, or None if the name is already taken
        """

    @abstractmethod
    async def update_team(self, team_id: int, **fields: Any) -> Optional[Team]:
        """
        Update name, icon or color of a team.

        @return: The updated team, or None if unknown or the new name is taken
        """

    @abstractmethod
    async def delete_team(self, team_id: int) -> bool:
        """
        Delete a team unless medals still reference it.

        @return: True if deleted, False if referenced or unknown
        """

    # Event categories
    @abstractmethod
    async def get_all_event_categories(self) -> List[EventCategory]: ...

    @abstractmethod
    async def get_category_by_id(self, category_id: int) -> Optional[EventCategory]: ...

    @abstractmethod
    async def create_event_category(self, name: str) -> Optional[EventCategory]: ...

    @abstractmethod
    async def delete_event_category(self, category_id: int) -> bool: ...

    # Events
    @abstractmethod
    async def get_all_events(self) -> List[Event]: ...

    @abstractmethod
    async def get_event_by_id(self, event_id: int) -> Optional[Event]: ...

    @abstractmethod
    async def create_event(
        self,
        name: str,
        category_id: Optional[int] = None,
        event_date: Optional[datetime] = None,
        status: EventStatus = EventStatus.UPCOMING,
    ) -> Event: ...

    @abstractmethod
    async def update_event_status(
        self,
        event_id: int,
        status: EventStatus,
    ) -> Optional[Event]: ...

    @abstractmethod
    async def delete_event(self, event_id: int) -> bool: ...

    # Medals
    @abstractmethod
    async def get_all_medals(self) -> List[Medal]: ...

    @abstractmethod
    async def get_medal_by_id(self, medal_id: int) -> Optional[Medal]: ...

    @abstractmethod
    async def get_medals_by_event_id(self, event_id: int) -> List[Medal]: ...

    @abstractmethod
    async def create_medal(
        self,
        event_id: int,
        team_id: int,
        medal_type: MedalType,
        points: int,
    ) -> Medal:
        """
        Upsert the medal for an (event, team) pair.

        An existing row keeps its id, takes the new type and points, and
        drops out of the publication ledger.
        """

    @abstractmethod
    async def delete_medal(self, medal_id: int) -> bool: ...

    # Publications and ledger
    @abstractmethod
    async def get_all_publications(self) -> List[Publication]:
        """Publication history, newest first."""

    @abstractmethod
    async def create_publication(
        self,
        published_by: str,
        medal_count: int,
        description: Optional[str] = None,
    ) -> Publication: ...

    @abstractmethod
    async def get_published_medal_ids(self) -> Set[int]: ...

    @abstractmethod
    async def commit_publication(
        self,
        medal_ids: Iterable[int],
        published_by: str,
        description: Optional[str] = None,
    ) -> Publication:
        """
        Atomically append a publication record, add ledger membership for
        ``medal_ids`` (existing members are left alone) and mark the settings
        as published.
        """

    # Score settings
    @abstractmethod
    async def get_score_settings(self) -> Optional[ScoreSettings]:
        """Return the settings singleton, creating it with defaults if absent."""

    @abstractmethod
    async def update_score_settings(self, **fields: Any) -> ScoreSettings:
        """Merge editable fields into the settings and stamp last_updated."""

    async def get_latest_publication(self) -> Optional[Publication]:
        publications = await self.get_all_publications()
        return publications[0] if publications else None

    async def get_unpublished_changes(self) -> List[Medal]:
        """
        Get every medal without ledger membership.

        @return: Draft medals in store order
        """
        published = await self.get_published_medal_ids()
        return [m for m in await self.get_all_medals() if m.id not in published]

    async def close(self) -> None:
        """Release backend resources."""


class MemoryStorage(Storage):
    """
    Keeps every entity type in its own id-keyed dict.

    Not thread-safe; every method runs to completion without awaiting, so a
    single asyncio loop never observes a half-applied change.
    """

    def __init__(
        self,
        default_points: Optional[Dict[str, int]] = None,
    ) -> None:
        self.default_points = dict(DEFAULT_POINTS)
        self.default_points.update(default_points or {})

        self._users: Dict[int, User] = {}
        self._teams: Dict[int, Team] = {}
        self._categories: Dict[int, EventCategory] = {}
        self._events: Dict[int, Event] = {}
        self._medals: Dict[int, Medal] = {}
        self._publications: Dict[int, Publication] = {}
        # Ledger: medal id -> published_at
        self._published: Dict[int, datetime] = {}
        self._settings: Optional[ScoreSettings] = None

        self._next_ids: Dict[str, int] = {}

    def _next_id(
        self,
        kind: str,
    ) -> int:
        next_id = self._next_ids.get(kind, 1)
        self._next_ids[kind] = next_id + 1
        return next_id

    # Users

    async def get_user(self, user_id: int) -> Optional[User]:
        return self._users.get(user_id)

    async def get_user_by_username(self, username: str) -> Optional[User]:
        return next((u for u in self._users.values() if u.username == username), None)

    async def create_user(self, username: str, password_hash: str) -> User:
        user = User(id=self._next_id("user"), username=username, password_hash=password_hash)
        self._users[user.id] = user
        return user

    # Teams

    def _team_name_taken(
        self,
        name: str,
        exclude_id: Optional[int] = None,
    ) -> bool:
        return any(t.name == name and t.id != exclude_id for t in self._teams.values())

    async def get_all_teams(self) -> List[Team]:
        return list(self._teams.values())

    async def get_team_by_id(self, team_id: int) -> Optional[Team]:
        return self._teams.get(team_id)

    async def create_team(
        self,
        name: str,
        icon: Optional[str] = None,
        color: Optional[str] = None,
    ) -> Optional[Team]:
        if self._team_name_taken(name):
            log.info("Rejected duplicate team name %r", name)
            return None

        team = Team(id=self._next_id("team"), name=name, icon=icon, color=color)
        self._teams[team.id] = team
        return team

    async def update_team(self, team_id: int, **fields: Any) -> Optional[Team]:
        existing = self._teams.get(team_id)
        if existing is None:
            return None

        changes = {k: v for k, v in fields.items() if k in ("name", "icon", "color")}
        if "name" in changes and self._team_name_taken(changes["name"], exclude_id=team_id):
            log.info("Rejected rename of team %d to duplicate %r", team_id, changes["name"])
            return None

        updated = replace(existing, **changes)
        self._teams[team_id] = updated
        return updated

    async def delete_team(self, team_id: int) -> bool:
        if any(m.team_id == team_id for m in self._medals.values()):
            log.info("Team %d still has medals, not deleting", team_id)
            return False
        return self._teams.pop(team_id, None) is not None

    # Event categories

    async def get_all_event_categories(self) -> List[EventCategory]:
        return list(self._categories.values())

    async def get_category_by_id(self, category_id: int) -> Optional[EventCategory]:
        return self._categories.get(category_id)

    async def create_event_category(self, name: str) -> Optional[EventCategory]:
        if any(c.name == name for c in self._categories.values()):
            log.info("Rejected duplicate category name %r", name)
            return None

        category = EventCategory(id=self._next_id("category"), name=name)
        self._categories[category.id] = category
        return category

    async def delete_event_category(self, category_id: int) -> bool:
        if any(e.category_id == category_id for e in self._events.values()):
            log.info("Category %d still has events, not deleting", category_id)
            return False
        return self._categories.pop(category_id, None) is not None

    # Events

    async def get_all_events(self) -> List[Event]:
        return list(self._events.values())

    async def get_event_by_id(self, event_id: int) -> Optional[Event]:
        return self._events.get(event_id)

    async def create_event(
        self,
        name: str,
        category_id: Optional[int] = None,
        event_date: Optional[datetime] = None,
        status: EventStatus = EventStatus.UPCOMING,
    ) -> Event:
        event = Event(
            id=self._next_id("event"),
            name=name,
            category_id=category_id,
            event_date=event_date,
            status=EventStatus(status),
        )
        self._events[event.id] = event
        return event

    async def update_event_status(
        self,
        event_id: int,
        status: EventStatus,
    ) -> Optional[Event]:
        existing = self._events.get(event_id)
        if existing is None:
            return None

        updated = replace(existing, status=EventStatus(status))
        self._events[event_id] = updated
        return updated

    async def delete_event(self, event_id: int) -> bool:
        if any(m.event_id == event_id for m in self._medals.values()):
            log.info("Event %d still has medals, not deleting", event_id)
            return False
        return self._events.pop(event_id, None) is not None

    # Medals

    async def get_all_medals(self) -> List[Medal]:
        return list(self._medals.values())

    async def get_medal_by_id(self, medal_id: int) -> Optional[Medal]:
        return self._medals.get(medal_id)

    async def get_medals_by_event_id(self, event_id: int) -> List[Medal]:
        return [m for m in self._medals.values() if m.event_id == event_id]

    async def create_medal(
        self,
        event_id: int,
        team_id: int,
        medal_type: MedalType,
        points: int,
    ) -> Medal:
        existing = next(
            (m for m in self._medals.values() if m.event_id == event_id and m.team_id == team_id),
            None,
        )

        if existing is not None:
            # Edited medals go back to draft
            self._published.pop(existing.id, None)
            updated = replace(existing, medal_type=MedalType(medal_type), points=points)
            self._medals[existing.id] = updated
            return updated

        medal = Medal(
            id=self._next_id("medal"),
            event_id=event_id,
            team_id=team_id,
            medal_type=MedalType(medal_type),
            points=points,
            created_at=utcnow(),
        )
        self._medals[medal.id] = medal
        return medal

    async def delete_medal(self, medal_id: int) -> bool:
        self._published.pop(medal_id, None)
        return self._medals.pop(medal_id, None) is not None

    # Publications and ledger

    async def get_all_publications(self) -> List[Publication]:
        return sorted(
            self._publications.values(),
            key=lambda p: (p.published_at, p.id),
            reverse=True,
        )

    async def create_publication(
        self,
        published_by: str,
        medal_count: int,
        description: Optional[str] = None,
    ) -> Publication:
        publication = Publication(
            id=self._next_id("publication"),
            published_by=published_by,
            medal_count=medal_count,
            description=description,
            published_at=utcnow(),
        )
        self._publications[publication.id] = publication
        return publication

    async def get_published_medal_ids(self) -> Set[int]:
        return set(self._published)

    async def commit_publication(
        self,
        medal_ids: Iterable[int],
        published_by: str,
        description: Optional[str] = None,
    ) -> Publication:
        medal_ids = list(medal_ids)
        settings = await self.get_score_settings()
        now = utcnow()

        # Build every new value before touching shared state
        publication = Publication(
            id=self._next_id("publication"),
            published_by=published_by,
            medal_count=len(medal_ids),
            description=description,
            published_at=now,
        )
        new_members = {mid: now for mid in medal_ids if mid not in self._published}
        new_settings = replace(settings, is_published=True, last_updated=now)

        self._publications[publication.id] = publication
        self._published.update(new_members)
        self._settings = new_settings
        return publication

    # Score settings

    async def get_score_settings(self) -> Optional[ScoreSettings]:
        if self._settings is None:
            self._settings = ScoreSettings(**self.default_points, last_updated=utcnow())
        return self._settings

    async def update_score_settings(self, **fields: Any) -> ScoreSettings:
        current = await self.get_score_settings()
        changes = {k: v for k, v in fields.items() if k in ScoreSettings.EDITABLE}
        self._settings = replace(current, **changes, last_updated=utcnow())
        return self._settings
