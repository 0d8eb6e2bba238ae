"""
Medal board facade: the operations the web layer calls.

Wraps a ``Storage`` backend with the publish workflow, the scoreboard
derivations, result recording and admin authentication. Writes that check
state before acting (medal upserts, guarded deletes, publishing) are
serialized through one asyncio lock.
"""

import asyncio
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from passlib.context import CryptContext

from .aggregation import compute_event_results, compute_medal_summary, compute_team_scores
from .errors import SettingsMissingError
from .logger import get_logger
from .models import (
    Event,
    EventCategory,
    EventResult,
    EventStatus,
    Medal,
    MedalSummary,
    MedalType,
    Publication,
    ScoreSettings,
    Team,
    TeamScore,
    User,
    points_for,
)
from .storage import Storage

log = get_logger("service")

DEFAULT_CATEGORIES = ("Cultural", "Literary", "Performing Arts", "Visual Arts")


pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=10)


def hash_password(password: str) -> str:
    """
    Hash a password with bcrypt.

    @param password: Plain text password
    @return: bcrypt hash string, salt included
    """
    return pwd_context.hash(password)


def verify_password(
    password: str,
    password_hash: str,
) -> bool:
    return pwd_context.verify(password, password_hash)


class MedalBoard:
    """Festival medal board operations over a storage backend."""

    def __init__(
        self,
        storage: Storage,
        admin_identity: str = "admin",
    ) -> None:
        self.storage = storage
        self.admin_identity = admin_identity
        self._write_lock = asyncio.Lock()

    async def bootstrap(
        self,
        admin_username: str,
        admin_password: str,
        categories: Iterable[str] = DEFAULT_CATEGORIES,
    ) -> None:
        """
        Seed the admin account, score settings and default categories.

        Existing rows are left alone, so this is safe on every start.

        @param admin_username: Username of the admin account
        @param admin_password: Password used if the account has to be created
        @param categories: Category names to create when missing
        """
        if await self.storage.get_user_by_username(admin_username) is None:
            loop = asyncio.get_running_loop()
            password_hash = await loop.run_in_executor(None, hash_password, admin_password)
            await self.storage.create_user(admin_username, password_hash)
            log.info("Created admin user %s", admin_username)

        await self.get_score_settings()

        existing = {c.name for c in await self.storage.get_all_event_categories()}
        for name in categories:
            if name not in existing:
                await self.storage.create_event_category(name)
                log.info("Created category: %s", name)

    async def authenticate(
        self,
        username: str,
        password: str,
    ) -> Optional[User]:
        """
        Check admin credentials.

        @return: The user on success, None otherwise
        """
        user = await self.storage.get_user_by_username(username)
        if user is not None:
            # Runs bcrypt off the event loop
            loop = asyncio.get_running_loop()
            if await loop.run_in_executor(None, verify_password, password, user.password_hash):
                return user
        log.warning("Failed login for %r", username)
        return None

    async def get_user(self, user_id: int) -> Optional[User]:
        return await self.storage.get_user(user_id)

    # Teams

    async def get_all_teams(self) -> List[Team]:
        return await self.storage.get_all_teams()

    async def get_team_by_id(self, team_id: int) -> Optional[Team]:
        return await self.storage.get_team_by_id(team_id)

    async def create_team(
        self,
        name: str,
        icon: Optional[str] = None,
        color: Optional[str] = None,
    ) -> Optional[Team]:
        team = await self.storage.create_team(name, icon=icon, color=color)
        if team:
            log.info("Created team %d %r", team.id, team.name)
        return team

    async def update_team(self, team_id: int, **fields: Any) -> Optional[Team]:
        return await self.storage.update_team(team_id, **fields)

    async def delete_team(self, team_id: int) -> bool:
        async with self._write_lock:
            return await self.storage.delete_team(team_id)

    # Categories

    async def get_all_event_categories(self) -> List[EventCategory]:
        return await self.storage.get_all_event_categories()

    async def create_event_category(self, name: str) -> Optional[EventCategory]:
        return await self.storage.create_event_category(name)

    async def delete_event_category(self, category_id: int) -> bool:
        async with self._write_lock:
            return await self.storage.delete_event_category(category_id)

    # Events

    async def get_all_events(self) -> List[Event]:
        return await self.storage.get_all_events()

    async def get_event_by_id(self, event_id: int) -> Optional[Event]:
        return await self.storage.get_event_by_id(event_id)

    async def create_event(
        self,
        name: str,
        category_id: Optional[int] = None,
        event_date: Optional[datetime] = None,
        status: EventStatus = EventStatus.UPCOMING,
    ) -> Event:
        event = await self.storage.create_event(
            name, category_id=category_id, event_date=event_date, status=status
        )
        log.info("Created event %d %r", event.id, event.name)
        return event

    async def update_event_status(
        self,
        event_id: int,
        status: EventStatus,
    ) -> Optional[Event]:
        return await self.storage.update_event_status(event_id, status)

    async def delete_event(self, event_id: int) -> bool:
        async with self._write_lock:
            return await self.storage.delete_event(event_id)

    # Medals

    async def get_all_medals(self) -> List[Medal]:
        return await self.storage.get_all_medals()

    async def get_medals_by_event_id(self, event_id: int) -> List[Medal]:
        return await self.storage.get_medals_by_event_id(event_id)

    async def create_medal(
        self,
        event_id: int,
        team_id: int,
        medal_type: MedalType,
        points: Optional[int] = None,
    ) -> Optional[Medal]:
        """
        Assign a medal to a team for an event, replacing any earlier one.

        @param event_id: Event the medal belongs to
        @param team_id: Team receiving the medal
        @param medal_type: Medal type
        @param points: Point value; the configured value for the type if None
        @return: The stored medal, unpublished, or None if the event or team
            does not exist
        """
        async with self._write_lock:
            if await self.storage.get_event_by_id(event_id) is None:
                return None
            if await self.storage.get_team_by_id(team_id) is None:
                return None
            return await self._upsert_medal(event_id, team_id, MedalType(medal_type), points)

    async def _upsert_medal(
        self,
        event_id: int,
        team_id: int,
        medal_type: MedalType,
        points: Optional[int],
    ) -> Medal:
        # Caller holds the write lock and has checked event and team exist
        if points is None:
            points = points_for(medal_type, await self.get_score_settings())

        medal = await self.storage.create_medal(event_id, team_id, medal_type, points)
        log.info(
            "Medal %d: team %d %s in event %d (%d pts), pending publication",
            medal.id,
            team_id,
            medal_type.value,
            event_id,
            points,
        )
        return medal

    async def delete_medal(self, medal_id: int) -> bool:
        async with self._write_lock:
            return await self.storage.delete_medal(medal_id)

    async def record_event_results(
        self,
        event_id: int,
        placements: Dict[int, MedalType],
    ) -> Optional[List[Medal]]:
        """
        Record the outcome of an event and mark it completed.

        Points for each medal come from the current score settings.

        @param event_id: Event whose results are recorded
        @param placements: Mapping of team id to medal type
        @return: The stored medals, or None if the event or any placed team
            does not exist (nothing is recorded then)
        """
        async with self._write_lock:
            if await self.storage.get_event_by_id(event_id) is None:
                return None
            for team_id in placements:
                if await self.storage.get_team_by_id(team_id) is None:
                    return None

            medals = [
                await self._upsert_medal(event_id, team_id, MedalType(medal_type), None)
                for team_id, medal_type in placements.items()
            ]
            await self.storage.update_event_status(event_id, EventStatus.COMPLETED)

        log.info("Recorded %d results for event %d", len(medals), event_id)
        return medals

    # Publications

    async def get_all_publications(self) -> List[Publication]:
        return await self.storage.get_all_publications()

    async def get_latest_publication(self) -> Optional[Publication]:
        return await self.storage.get_latest_publication()

    async def get_unpublished_changes(self) -> List[Medal]:
        return await self.storage.get_unpublished_changes()

    async def publish_scores(
        self,
        published_by: Optional[str] = None,
    ) -> ScoreSettings:
        """
        Publish every draft medal and log the publication.

        A publication record is appended even when there is nothing to
        publish.

        @param published_by: Acting admin username (the configured admin identity if None)
        @return: Score settings after publishing
        """
        async with self._write_lock:
            unpublished = await self.storage.get_unpublished_changes()
            publication = await self.storage.commit_publication(
                [medal.id for medal in unpublished],
                published_by=published_by or self.admin_identity,
                description=f"Published {len(unpublished)} medal changes",
            )

        log.info(
            "Publication %d by %s: %d medal changes",
            publication.id,
            publication.published_by,
            publication.medal_count,
        )
        return await self.get_score_settings()

    # Settings

    async def get_score_settings(self) -> ScoreSettings:
        settings = await self.storage.get_score_settings()
        if settings is None:
            raise SettingsMissingError()
        return settings

    async def update_score_settings(self, **fields: Any) -> ScoreSettings:
        settings = await self.storage.update_score_settings(**fields)
        log.info("Score settings updated: %s", sorted(fields))
        return settings

    # Scoreboard

    async def get_team_scores(self) -> List[TeamScore]:
        # Settings must exist for a scoreboard to be meaningful
        await self.get_score_settings()
        return compute_team_scores(
            await self.storage.get_all_teams(),
            await self.storage.get_all_medals(),
            await self.storage.get_published_medal_ids(),
        )

    async def get_event_results(self) -> List[EventResult]:
        return compute_event_results(
            await self.storage.get_all_events(),
            await self.storage.get_all_event_categories(),
            await self.storage.get_all_teams(),
            await self.storage.get_all_medals(),
            await self.storage.get_published_medal_ids(),
        )

    async def get_medal_summary(self) -> MedalSummary:
        return compute_medal_summary(
            await self.storage.get_all_medals(),
            await self.storage.get_published_medal_ids(),
        )
