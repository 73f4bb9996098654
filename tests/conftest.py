import os

# Tracing decorators stay in place but must not export anything from tests
os.environ.setdefault("OPIK_TRACK_DISABLE", "true")
# Model modules read get_settings() at import time; the default OpenAI
# embedding provider needs a key to validate
os.environ.setdefault("EMBEDDING__API_KEY", "sk-test")

from unittest.mock import AsyncMock, MagicMock

import pytest


@pytest.fixture
def mock_session():
    session = AsyncMock()
    session.add = MagicMock()
    return session


@pytest.fixture
def mock_db(mock_session):
    """A DatabaseManager stand-in whose get_session() yields `mock_session`."""
    db = MagicMock()
    db.get_session.return_value.__aenter__.return_value = mock_session
    db.get_session.return_value.__aexit__.return_value = False
    return db
