"""All-or-nothing concurrent execution of independent read queries."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Awaitable, Dict, Optional

from restaurant_analytics.services.errors import AnalyticsError, DataSourceError

logger = logging.getLogger(__name__)


async def gather_all_or_nothing(
    context: str,
    queries: Dict[str, Awaitable[Any]],
    *,
    timeout: Optional[float] = None,
) -> Dict[str, Any]:
    """Run ``queries`` concurrently and return their results by name.

    The first failure cancels every query still in flight and is re-raised;
    non-engine exceptions are wrapped in ``DataSourceError``. When ``timeout``
    expires, or the caller is cancelled, all in-flight queries are cancelled
    too, so no query outlives the request.
    """

    started = time.perf_counter()
    tasks = {name: asyncio.ensure_future(query) for name, query in queries.items()}
    if not tasks:
        return {}
    try:
        _, pending = await asyncio.wait(
            tasks.values(),
            timeout=timeout,
            return_when=asyncio.FIRST_EXCEPTION,
        )
    except asyncio.CancelledError:
        await _cancel_all(tasks.values())
        raise

    await _cancel_all(pending)

    failure: Optional[BaseException] = None
    failed_query = ""
    for name, task in tasks.items():
        if task.cancelled():
            continue
        error = task.exception()
        if error is not None and failure is None:
            failure, failed_query = error, name

    if failure is not None:
        logger.error("%s aborted: query '%s' failed: %s", context, failed_query, failure)
        if isinstance(failure, AnalyticsError):
            raise failure
        raise DataSourceError(f"{context} failed while running '{failed_query}'.") from failure

    if pending:
        logger.error("%s timed out after %.1fs (%d queries pending)", context, timeout or 0, len(pending))
        raise DataSourceError(f"{context} timed out.")

    logger.debug("%s: %d queries completed in %.3fs", context, len(tasks), time.perf_counter() - started)
    return {name: task.result() for name, task in tasks.items()}


async def _cancel_all(tasks) -> None:
    outstanding = [task for task in tasks if not task.done()]
    for task in outstanding:
        task.cancel()
    if outstanding:
        await asyncio.gather(*outstanding, return_exceptions=True)


__all__ = ["gather_all_or_nothing"]
