"""
Festival Medal Board - team standings for multi-event festivals.

This package provides:
- Medal assignment with one medal per event and team
- Draft and published medal states with a publication history
- Ranked team standings, event results and medal tallies
- Interchangeable in-memory and SQLite storage
- Web interface and JSON API for the scoreboard and admin actions
"""

from .config import BoardConfig
from .database import SQLiteStorage
from .models import EventStatus, MedalType
from .scoreboard import ScoreboardSystem
from .service import MedalBoard
from .storage import MemoryStorage, Storage
from .web_handlers import WebHandlers

__version__ = "1.0.0"
__author__ = "Festival Medal Board Contributors"

__all__ = [
    "BoardConfig",
    "EventStatus",
    "MedalBoard",
    "MedalType",
    "MemoryStorage",
    "SQLiteStorage",
    "ScoreboardSystem",
    "Storage",
    "WebHandlers",
]
