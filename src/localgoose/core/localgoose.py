"""Localgoose facade.

Entry points used by applications and tests: build a Connection, or build
one and connect it in a single call.
"""

import logging
import os
from typing import Any

from dotenv import load_dotenv

from localgoose.core.connection.connection import Connection

logger = logging.getLogger(__name__)
load_dotenv()


def create_connection(db_path: str | os.PathLike[str] | None = None, **kwargs: Any) -> Connection:
    """Create a Connection without connecting it.

    Args:
        db_path: Database directory; falls back to the configured ``db_path``.
        **kwargs: Forwarded to Connection (``store``, ``config_path``, ``config``).
    """
    return Connection(db_path, **kwargs)


async def connect(db_path: str | os.PathLike[str] | None = None, **kwargs: Any) -> Connection:
    """Create a Connection and connect it.

    Raises:
        PersistenceError: If the database directory cannot be prepared.
    """
    connection = create_connection(db_path, **kwargs)
    await connection.connect()
    logger.debug("localgoose.connect ready at %s", connection.db_path)
    return connection


__all__ = ["connect", "create_connection"]
