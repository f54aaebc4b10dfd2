"""Shared fixtures for codeatlas tests.

Engine, service and API tests run without a database: services are mocked and
the session factory below stands in for ``async_sessionmaker``. DAO tests
(tests/dao) need PostgreSQL, see tests/dao/conftest.py.
"""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest


def make_session_factory() -> MagicMock:
    """``async_sessionmaker`` stand-in supporting ``async with factory() as s, s.begin()``.

    Every call returns the same session mock, exposed as ``factory.session``.
    """
    session = MagicMock()
    session.__aenter__ = AsyncMock(return_value=session)
    session.__aexit__ = AsyncMock(return_value=False)
    tx = MagicMock()
    tx.__aenter__ = AsyncMock(return_value=tx)
    tx.__aexit__ = AsyncMock(return_value=False)
    session.begin = MagicMock(return_value=tx)
    session.execute = AsyncMock()
    session.flush = AsyncMock()
    factory = MagicMock(return_value=session)
    factory.session = session
    return factory


@pytest.fixture
def session_factory() -> MagicMock:
    return make_session_factory()
