import pytest

from medalboard.database import SQLiteStorage
from medalboard.service import MedalBoard
from medalboard.storage import MemoryStorage


@pytest.fixture(params=["memory", "sqlite"])
async def storage(request, tmp_path):
    """Every storage backend, freshly initialized."""
    if request.param == "sqlite":
        backend = SQLiteStorage(str(tmp_path / "board.db"))
        await backend.init_db()
    else:
        backend = MemoryStorage()
    yield backend
    await backend.close()


@pytest.fixture
async def board(storage):
    return MedalBoard(storage, admin_identity="festadmin")


@pytest.fixture
async def chess(board):
    """Two teams and one upcoming event."""
    red = await board.create_team("Red", color="#ff0000")
    blue = await board.create_team("Blue", color="#0000ff")
    event = await board.create_event("Chess")
    return red, blue, event
