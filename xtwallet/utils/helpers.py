"""Small helpers shared across contexts."""

from __future__ import annotations

import asyncio
import inspect
import json
from pathlib import Path
from typing import Any, Callable

from loguru import logger

from xtwallet.utils.exceptions import DataCloneError

# Strong references to listener tasks until they finish; the loop keeps only weak ones.
_background_tasks: set[asyncio.Task] = set()


def get_data_path() -> Path:
    """Get the xtwallet data directory (~/.xtwallet)."""
    return ensure_dir(Path.home() / ".xtwallet")


def ensure_dir(path: Path) -> Path:
    path.mkdir(parents=True, exist_ok=True)
    return path


def structured_clone(value: Any) -> Any:
    """
    Deep-copy a value the way it would survive a context boundary.

    Only JSON-representable data passes; live objects, callables and
    anything else that cannot be encoded raise DataCloneError.
    """
    try:
        return json.loads(json.dumps(value, ensure_ascii=False, allow_nan=False))
    except (TypeError, ValueError) as e:
        raise DataCloneError(f"value could not be cloned: {e}") from e


def call_handler(handler: Callable[..., Any], *args: Any, label: str = "handler") -> asyncio.Future | None:
    """
    Invoke a sync or async callback and isolate its failures.

    Awaitable results are scheduled as tasks on the running loop and held
    until they finish; the task (or None for plain callables) is returned. Exceptions are logged and
    never propagate to the caller.
    """
    try:
        result = handler(*args)
    except Exception:
        logger.exception(f"Unhandled error in {label}")
        return None
    if not inspect.isawaitable(result):
        return None

    async def _guarded() -> None:
        try:
            await result
        except Exception:
            logger.exception(f"Unhandled error in {label}")

    task = asyncio.ensure_future(_guarded())
    _background_tasks.add(task)
    task.add_done_callback(_background_tasks.discard)
    return task
