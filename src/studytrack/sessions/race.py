"""Bound how long a caller waits on a remote call without cancelling it."""

from __future__ import annotations

import asyncio
import logging
from functools import partial
from typing import Awaitable, TypeVar

from ..errors import SaveTimeoutError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _report_abandoned(label: str, task: asyncio.Future) -> None:
    if task.cancelled():
        logger.info("Abandoned %s was cancelled", label)
        return
    exc = task.exception()
    if exc is not None:
        logger.warning("Abandoned %s failed after timeout", label, extra={"error": str(exc)})
    else:
        logger.info("Abandoned %s completed after timeout", label)


async def race_with_timeout(awaitable: Awaitable[T], timeout: float, *, label: str = "operation") -> T:
    """Return the result of ``awaitable`` or raise :class:`SaveTimeoutError`.

    The caller sees exactly one outcome per call. On timeout the underlying
    task keeps running: a write that was already sent may still land, so
    writes raced here should be idempotent.
    """

    task = asyncio.ensure_future(awaitable)
    try:
        done, _ = await asyncio.wait({task}, timeout=timeout)
    except asyncio.CancelledError:
        task.add_done_callback(partial(_report_abandoned, label))
        raise

    if task in done:
        return task.result()

    task.add_done_callback(partial(_report_abandoned, label))
    raise SaveTimeoutError(label, timeout)


__all__ = ["race_with_timeout"]
