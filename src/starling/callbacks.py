"""Helpers for user-supplied callbacks, which may be plain or async."""

from __future__ import annotations

import inspect
from collections.abc import Callable
from typing import Any

# A callback may return None or an awaitable
Callback = Callable[..., Any]


async def invoke_callback(callback: Callback, *args: Any) -> None:
    """Call `callback` and await the result if it is awaitable."""
    result = callback(*args)
    if inspect.isawaitable(result):
        await result
