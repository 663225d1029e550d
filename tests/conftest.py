import sys
from pathlib import Path

import pytest
import pytest_asyncio

# Ensure project root is on sys.path for CI environments where
# Python might not automatically include it (e.g., some GitHub
# Actions runners invoking pytest differently).
PROJECT_ROOT = Path(__file__).parent.parent.resolve()
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from config.config_loader import ConfigLoader
from services.autoroom_service import AutoRoomService
from services.db.database import Database
from tests.factories import GUILD_ID, make_config_service, make_platform, make_policy


@pytest.fixture(autouse=True)
def reset_config_loader():
    """Every test starts from an unloaded ConfigLoader."""
    ConfigLoader.reset()
    yield
    ConfigLoader.reset()


@pytest_asyncio.fixture()
async def temp_db(tmp_path):
    """Initialize Database to a temporary file for isolation across tests."""
    # Save original state
    orig_path = Database._db_path
    orig_initialized = Database._initialized

    # Reset and initialize with temp database
    Database._initialized = False
    Database._db_path = None
    db_file = tmp_path / "test.db"
    await Database.initialize(str(db_file))

    # Verify initialization worked
    assert Database._initialized is True
    assert Database._db_path == str(db_file)

    yield str(db_file)

    # Restore original state completely
    Database._db_path = orig_path
    Database._initialized = orig_initialized


@pytest.fixture
def platform():
    """Fake platform with a creator channel in GUILD_ID."""
    return make_platform()


@pytest.fixture
def policies():
    """Mutable tenant -> policy mapping served by the config double."""
    return {GUILD_ID: make_policy()}


@pytest_asyncio.fixture
async def autoroom_service(platform, policies):
    """Initialized AutoRoomService without the sweeper loop."""
    service = AutoRoomService(make_config_service(policies), platform, test_mode=True)
    await service.initialize()
    yield service
    await service.shutdown()
