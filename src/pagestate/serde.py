"""State serialization and user-callable invocation."""

from __future__ import annotations

import asyncio
import inspect
import json
from collections.abc import Callable
from typing import Any

from pydantic import BaseModel
from pydantic_core import PydanticSerializationError, to_json

from pagestate.errors import SerializationError


def serialize_state(value: Any) -> str:
    """Serialize generated state to JSON text.

    Accepts pydantic models, dataclasses and plain JSON-compatible values.
    """
    try:
        return to_json(value).decode()
    except PydanticSerializationError as exc:
        raise SerializationError(str(exc)) from exc


def deserialize_state(text: str | None, model: type[BaseModel] | None = None) -> Any:
    if text is None:
        return None
    try:
        if model is not None:
            return model.model_validate_json(text)
        return json.loads(text)
    except ValueError as exc:  # includes ValidationError and JSONDecodeError
        raise SerializationError(str(exc)) from exc


def _is_async_callable(fn: Callable[..., Any]) -> bool:
    return inspect.iscoroutinefunction(fn) or inspect.iscoroutinefunction(
        getattr(fn, "__call__", None)  # noqa: B004
    )


async def invoke(fn: Callable[..., Any], *args: Any) -> Any:
    """Call a user-supplied generator, predicate or merge function.

    Coroutine functions are awaited on the loop. Plain functions run in a
    worker thread so blocking I/O inside them never stalls other requests.
    """
    if _is_async_callable(fn):
        return await fn(*args)
    result = await asyncio.to_thread(fn, *args)
    if inspect.isawaitable(result):
        return await result
    return result
