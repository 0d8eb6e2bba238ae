"""
Records and derived views for the festival medal board.

Entities reference each other by id only. Every record renders itself to the
camelCase JSON shape served by the web API through ``to_dict``.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional


class MedalType(str, Enum):
    GOLD = "GOLD"
    SILVER = "SILVER"
    BRONZE = "BRONZE"
    NON_WINNER = "NON_WINNER"
    NO_ENTRY = "NO_ENTRY"


class EventStatus(str, Enum):
    UPCOMING = "UPCOMING"
    ONGOING = "ONGOING"
    COMPLETED = "COMPLETED"


# Medal types that count towards medal tallies
PODIUM_TYPES = (MedalType.GOLD, MedalType.SILVER, MedalType.BRONZE)

DEFAULT_POINTS = {
    "gold_points": 10,
    "silver_points": 7,
    "bronze_points": 5,
    "non_winner_points": 1,
    "no_entry_points": 0,
}


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def isoformat(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat(timespec="microseconds") if value is not None else None


def parse_datetime(value: Any) -> Optional[datetime]:
    """
    Parse a stored or submitted timestamp.

    @param value: None, a datetime or an ISO-8601 string
    @return: Aware datetime (naive values are assumed to be UTC) or None
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass
class User:
    id: int
    username: str
    password_hash: str

    def to_dict(self) -> Dict[str, Any]:
        # Never expose the hash
        return {"id": self.id, "username": self.username}


@dataclass
class Team:
    id: int
    name: str
    icon: Optional[str] = None
    color: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name, "icon": self.icon, "color": self.color}


@dataclass
class EventCategory:
    id: int
    name: str

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name}


@dataclass
class Event:
    id: int
    name: str
    category_id: Optional[int] = None
    event_date: Optional[datetime] = None
    status: EventStatus = EventStatus.UPCOMING

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "categoryId": self.category_id,
            "eventDate": isoformat(self.event_date),
            "status": self.status.value,
        }


@dataclass
class Medal:
    id: int
    event_id: int
    team_id: int
    medal_type: MedalType
    points: int
    created_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "eventId": self.event_id,
            "teamId": self.team_id,
            "medalType": self.medal_type.value,
            "points": self.points,
            "createdAt": isoformat(self.created_at),
        }


@dataclass(frozen=True)
class Publication:
    id: int
    published_by: str
    medal_count: int
    description: Optional[str] = None
    published_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "publishedBy": self.published_by,
            "description": self.description,
            "medalCount": self.medal_count,
            "publishedAt": isoformat(self.published_at),
        }


@dataclass
class ScoreSettings:
    gold_points: int = DEFAULT_POINTS["gold_points"]
    silver_points: int = DEFAULT_POINTS["silver_points"]
    bronze_points: int = DEFAULT_POINTS["bronze_points"]
    non_winner_points: int = DEFAULT_POINTS["non_winner_points"]
    no_entry_points: int = DEFAULT_POINTS["no_entry_points"]
    last_updated: datetime = field(default_factory=utcnow)
    is_published: bool = True
    id: int = 1

    # Fields an admin may change through update_score_settings
    EDITABLE = (
        "gold_points",
        "silver_points",
        "bronze_points",
        "non_winner_points",
        "no_entry_points",
        "is_published",
    )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "goldPoints": self.gold_points,
            "silverPoints": self.silver_points,
            "bronzePoints": self.bronze_points,
            "nonWinnerPoints": self.non_winner_points,
            "noEntryPoints": self.no_entry_points,
            "lastUpdated": isoformat(self.last_updated),
            "isPublished": self.is_published,
        }


def points_for(
    medal_type: MedalType,
    settings: ScoreSettings,
) -> int:
    """
    Look up the configured point value for a medal type.

    @param medal_type: Medal type to score
    @param settings: Current score settings
    @return: Point value for the medal type
    """
    return {
        MedalType.GOLD: settings.gold_points,
        MedalType.SILVER: settings.silver_points,
        MedalType.BRONZE: settings.bronze_points,
        MedalType.NON_WINNER: settings.non_winner_points,
        MedalType.NO_ENTRY: settings.no_entry_points,
    }[MedalType(medal_type)]


@dataclass
class TeamScore:
    id: int
    name: str
    icon: Optional[str] = None
    color: Optional[str] = None
    gold_count: int = 0
    silver_count: int = 0
    bronze_count: int = 0
    total_score: int = 0
    rank: int = 0

    def sort_key(self):
        return (self.total_score, self.gold_count, self.silver_count, self.bronze_count)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "icon": self.icon,
            "color": self.color,
            "goldCount": self.gold_count,
            "silverCount": self.silver_count,
            "bronzeCount": self.bronze_count,
            "totalScore": self.total_score,
            "rank": self.rank,
        }


@dataclass
class TeamRef:
    id: int
    name: str

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name}


@dataclass
class EventResult:
    id: int
    name: str
    category: str
    category_id: int
    status: EventStatus
    event_date: Optional[datetime] = None
    gold_team: Optional[TeamRef] = None
    silver_team: Optional[TeamRef] = None
    bronze_team: Optional[TeamRef] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "category": self.category,
            "categoryId": self.category_id,
            "eventDate": isoformat(self.event_date),
            "status": self.status.value,
            "goldTeam": self.gold_team.to_dict() if self.gold_team else None,
            "silverTeam": self.silver_team.to_dict() if self.silver_team else None,
            "bronzeTeam": self.bronze_team.to_dict() if self.bronze_team else None,
        }


@dataclass
class MedalSummary:
    gold_count: int = 0
    silver_count: int = 0
    bronze_count: int = 0

    @property
    def total_medals(self) -> int:
        return self.gold_count + self.silver_count + self.bronze_count

    def to_dict(self) -> Dict[str, Any]:
        return {
            "goldCount": self.gold_count,
            "silverCount": self.silver_count,
            "bronzeCount": self.bronze_count,
            "totalMedals": self.total_medals,
        }
