import asyncio

import pytest

from restaurant_analytics.services.errors import DataSourceError, NotFoundError
from restaurant_analytics.services.fan_out import gather_all_or_nothing


async def _value(value, delay=0.0):
    await asyncio.sleep(delay)
    return value


def test_results_are_keyed_by_query_name() -> None:
    results = asyncio.run(
        gather_all_or_nothing("report", {"slow": _value(1, 0.01), "fast": _value(2)}, timeout=1)
    )

    assert results == {"slow": 1, "fast": 2}


def test_no_queries_means_no_results() -> None:
    assert asyncio.run(gather_all_or_nothing("report", {})) == {}


def test_engine_errors_pass_through_unchanged() -> None:
    async def _missing():
        raise NotFoundError("Menu item not found.")

    with pytest.raises(NotFoundError):
        asyncio.run(gather_all_or_nothing("report", {"item": _missing(), "other": _value(1)}))


def test_other_errors_are_wrapped() -> None:
    async def _broken():
        raise KeyError("total_amount")

    with pytest.raises(DataSourceError) as excinfo:
        asyncio.run(gather_all_or_nothing("report", {"totals": _broken()}))

    assert excinfo.value.message == "report failed while running 'totals'."


def test_cancelling_the_caller_cancels_every_query() -> None:
    cancelled = []

    async def _hang(name):
        try:
            await asyncio.sleep(30)
        except asyncio.CancelledError:
            cancelled.append(name)
            raise

    async def _scenario():
        outer = asyncio.ensure_future(gather_all_or_nothing("report", {"a": _hang("a"), "b": _hang("b")}))
        await asyncio.sleep(0.01)
        outer.cancel()
        with pytest.raises(asyncio.CancelledError):
            await outer

    asyncio.run(_scenario())

    assert sorted(cancelled) == ["a", "b"]
