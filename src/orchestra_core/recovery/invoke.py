"""Helpers for invoking recoverable actions."""

import asyncio
import inspect
from typing import Any

from orchestra_core.errors import create_error

from .types import RecoverableAction


async def call_action(action: RecoverableAction) -> Any:
    """Call a zero-argument action, awaiting its result if needed."""
    result = action()
    if inspect.isawaitable(result):
        result = await result
    return result


async def run_with_timeout(
    action: RecoverableAction,
    timeout_seconds: float | None,
    action_name: str,
) -> Any:
    """Run an action, racing it against a timer.

    A ``TimeoutError`` raised by the action itself is re-raised unchanged;
    only expiry of the timer becomes a ``StepTimeoutError``.

    Raises:
        StepTimeoutError: If the timer expires first
    """
    if timeout_seconds is None:
        return await call_action(action)

    timer = asyncio.timeout(timeout_seconds)
    try:
        async with timer:
            return await call_action(action)
    except TimeoutError as e:
        if timer.expired():
            raise create_error(
                "STEP_TIMEOUT",
                action_name=action_name,
                timeout_seconds=timeout_seconds,
                cause=e,
            ) from e
        raise


def describe_action(action: Any) -> str:
    """Best-effort identifier for an action."""
    for attribute in ("name", "__name__"):
        value = getattr(action, attribute, None)
        if isinstance(value, str) and value and value != "<lambda>":
            return value
    return "anonymous"
