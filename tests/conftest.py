"""Pytest fixtures.

This file adjusts sys.path for src-layout imports.
"""

# ruff: noqa: E402

import os
import sys

# Ensure `src` is on sys.path so imports like `from localgoose.core...` resolve during tests
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
SRC = os.path.join(ROOT, "src")
if os.path.isdir(SRC):
    sys.path.insert(0, SRC)
sys.path.insert(0, ROOT)

import pytest
import pytest_asyncio
from rich.traceback import install

from localgoose.core.connection.connection import Connection
from localgoose.core.storage.store import InMemoryCollectionStore
from tests.utils import make_post_schema, make_user_schema

# Enable readable tracebacks in development / test environments.
# Can be disabled with PYTEST_RICH=0
if os.getenv("PYTEST_RICH", "1") == "1":
    install(
        show_locals=True,  # show local variables for each frame
        width=None,  # use terminal width
        word_wrap=True,  # wrap long lines
        extra_lines=1,  # some context around lines
        suppress=["/usr/lib/python3", "site-packages"],  # hide "noisy" third-party frames
    )


@pytest.fixture(autouse=True)
def _clean_localgoose_env(monkeypatch):
    """Keep LOCALGOOSE__* variables of the host environment out of tests."""
    for key in list(os.environ):
        if key.startswith("LOCALGOOSE__"):
            monkeypatch.delenv(key)


@pytest_asyncio.fixture
async def connection():
    """Provide a connected Connection backed by an in-memory store."""
    conn = Connection(store=InMemoryCollectionStore())
    await conn.connect()
    yield conn
    await conn.close()


@pytest_asyncio.fixture
async def json_connection(tmp_path):
    """Provide a connected Connection writing JSON files under ``tmp_path``."""
    conn = Connection(tmp_path / "db")
    await conn.connect()
    yield conn
    await conn.close()


@pytest.fixture
def user_model(connection):
    """Register the shared User schema on the in-memory connection."""
    return connection.model("User", make_user_schema())


@pytest.fixture
def post_model(connection, user_model):
    """Register the shared Post schema (referencing User) on the in-memory connection."""
    return connection.model("Post", make_post_schema())
