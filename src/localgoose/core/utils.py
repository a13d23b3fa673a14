"""Small core utilities used across the project."""

import inspect
import logging
import os
from collections.abc import Callable
from typing import Any

# Set up a module-level logger
logger = logging.getLogger(__name__)


def get_project_path():
    """Return the current working directory used as project root."""
    return os.getcwd()


def get_default_db_path():
    """Allows exposing the default database directory."""
    return os.path.join(get_project_path(), "db")


async def run_sync_or_async(func: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
    """Call ``func`` and await the result when it is awaitable."""
    result = func(*args, **kwargs)
    if inspect.isawaitable(result):
        return await result
    return result


def positional_arity(func: Callable[..., Any]) -> int:
    """Return how many positional arguments ``func`` accepts.

    ``*args`` counts as unbounded. Callables without an inspectable
    signature (some builtins) are assumed to take one argument.
    """
    try:
        signature = inspect.signature(func)
    except (TypeError, ValueError):
        return 1
    count = 0
    for param in signature.parameters.values():
        if param.kind == param.VAR_POSITIONAL:
            return 1_000
        if param.kind in (param.POSITIONAL_ONLY, param.POSITIONAL_OR_KEYWORD):
            count += 1
    return count
