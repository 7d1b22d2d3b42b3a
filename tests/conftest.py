"""Shared test fixtures and configuration.

Sets up fake environment variables so zentasks.config doesn't sys.exit(),
and provides temp-file SQLite stores and fake collaborators.
"""

import os
import tempfile

# Patch env vars BEFORE any zentasks imports
os.environ.setdefault("TELEGRAM_BOT_TOKEN", "fake-token-for-tests")
os.environ.setdefault("LLM_API_KEY", "fake-llm-key-for-tests")
os.environ.setdefault("LLM_PROVIDER", "anthropic")
os.environ.setdefault("DATABASE_PATH", os.path.join(tempfile.gettempdir(), "zentasks-tests.db"))
os.environ.setdefault("CALENDAR_PROVIDER", "none")
os.environ.setdefault("CRON_SECRET", "")

from unittest.mock import AsyncMock

import pytest


@pytest.fixture
def tmp_db_path(tmp_path):
    """Return a temporary SQLite DB path shared by all stores in a test."""
    return str(tmp_path / "test_zentasks.db")


@pytest.fixture
def user_db(tmp_db_path):
    from zentasks.data.db import UserDB
    return UserDB(db_path=tmp_db_path)


@pytest.fixture
def task_db(tmp_db_path):
    from zentasks.data.db import TaskDB
    return TaskDB(db_path=tmp_db_path)


@pytest.fixture
def nudge_db(tmp_db_path):
    from zentasks.data.db import NudgeDB
    return NudgeDB(db_path=tmp_db_path)


@pytest.fixture
def calendar():
    """A CalendarPort fake with an empty calendar."""
    cal = AsyncMock()
    cal.get_busy_periods.return_value = []
    cal.get_upcoming_events.return_value = []
    return cal


@pytest.fixture
def llm():
    """An LLMPort fake; set ``complete_json.return_value`` per test."""
    return AsyncMock()


@pytest.fixture
def notifier():
    """A NotificationPort fake; send_nudge returns a Telegram message id."""
    n = AsyncMock()
    n.send_nudge.return_value = "777"
    return n
