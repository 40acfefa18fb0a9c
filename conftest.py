import os
import shutil
import tempfile
from datetime import date

import pytest

# Create a temporary SQLite database file for the whole test session
_TEMP_DIR = tempfile.mkdtemp(prefix="salesdesk_tests_")
_DB_FILE = os.path.join(_TEMP_DIR, "test_salesdesk.db")
os.environ["SALESDESK_DATABASE_URL"] = f"sqlite:///{_DB_FILE}"

# A Wednesday; the auto payment date from here is Friday 2025-03-21.
FIXED_TODAY = date(2025, 3, 12)


@pytest.fixture(scope="session", autouse=True)
def setup_test_database():
    """Initialize a fresh temporary SQLite database for tests and clean it up after."""
    # Import after setting env var so the app uses the temp DB
    from salesdesk.database import engine, init_db

    init_db()

    yield

    engine.dispose()
    shutil.rmtree(_TEMP_DIR, ignore_errors=True)


@pytest.fixture
def gateway():
    from salesdesk.repository import InMemoryRecordGateway

    return InMemoryRecordGateway()


@pytest.fixture
def lifecycle(gateway):
    from salesdesk.core.lifecycle import LifecycleEngine

    return LifecycleEngine(gateway, today=lambda: FIXED_TODAY)


@pytest.fixture
def seller():
    from salesdesk.core.lifecycle import Actor

    return Actor(user_id=7, role="user")


@pytest.fixture
def admin():
    from salesdesk.core.lifecycle import Actor

    return Actor(user_id=1, role="admin")
