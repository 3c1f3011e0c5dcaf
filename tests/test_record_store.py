"""Record store behaviour: typed filters, summaries and the PostgREST adapter.

The PostgREST adapter is exercised against a fluent fake client, no real
database is needed.
"""

import asyncio
from datetime import datetime, timedelta
from uuid import uuid4

import pytest
from httpx import Timeout
from postgrest import APIError as PostgrestAPIError

from restaurant_analytics.services import postgrest_client as postgrest_client_module
from restaurant_analytics.services import record_store as record_store_module
from restaurant_analytics.services.errors import DataSourceError, ValidationError
from restaurant_analytics.services.record_store import (
    InMemoryRecordStore,
    PostgrestRecordStore,
    apply_record_filter,
    summarize_records,
)
from restaurant_analytics.services.records import Order, RecordFilter
from restaurant_analytics.services.time_windows import TimeWindow


class _FakeQuery:
    """Fluent stand-in for a PostgREST request builder that records every call."""

    def __init__(self, rows=None, count=None, error=None):
        self.rows = rows or []
        self.count = count
        self.error = error
        self.calls = []

    def select(self, *columns, **kwargs):
        self.calls.append(("select", columns, kwargs))
        return self

    @property
    def not_(self):
        self.calls.append(("not",))
        return self

    def _record(name):
        def _method(self, *args, **kwargs):
            self.calls.append((name,) + args)
            return self

        return _method

    eq = _record("eq")
    in_ = _record("in_")
    gte = _record("gte")
    lte = _record("lte")
    lt = _record("lt")
    is_ = _record("is_")
    order = _record("order")
    limit = _record("limit")

    def execute(self):
        if self.error is not None:
            raise self.error
        return type("Response", (), {"data": self.rows, "count": self.count})()


class _FakeClient:
    def __init__(self, query):
        self.query = query
        self.tables = []

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        return False

    def table(self, name):
        self.tables.append(name)
        return self.query


@pytest.fixture
def fake_postgrest(monkeypatch):
    def _install(query):
        client = _FakeClient(query)
        monkeypatch.setattr(record_store_module, "create_postgrest_client", lambda *args, **kwargs: client)
        return client

    return _install


def test_in_memory_find_applies_status_and_window_filters(make_order, now) -> None:
    today = make_order(20)
    cancelled = make_order(30, status="cancelled")
    last_month = make_order(40, order_date=now - timedelta(days=30))
    store = InMemoryRecordStore(orders=[today, cancelled, last_month])

    record_filter = RecordFilter(
        window=TimeWindow(start=now - timedelta(days=1)),
        exclude_statuses=("cancelled",),
    )
    rows = asyncio.run(store.find_with_filter("orders", record_filter))

    assert rows == [today]


def test_in_memory_find_orders_results(make_review, now) -> None:
    item_id = uuid4()
    older = make_review(item_id, 4, date=now - timedelta(days=2))
    newer = make_review(item_id, 2, date=now)
    store = InMemoryRecordStore(reviews=[older, newer])

    rows = asyncio.run(store.find_with_filter("reviews", order_by="date", descending=True))

    assert rows == [newer, older]


def test_in_memory_rating_bounds_and_count(make_review) -> None:
    item_id = uuid4()
    store = InMemoryRecordStore(reviews=[make_review(item_id, rating) for rating in (1, 2, 3, 4, 5)])

    count = asyncio.run(store.count_with_filter("reviews", RecordFilter(min_rating=2, max_rating=4)))

    assert count == 3


def test_filters_that_do_not_apply_to_a_collection_are_rejected() -> None:
    store = InMemoryRecordStore()

    with pytest.raises(ValidationError):
        asyncio.run(store.find_with_filter("reviews", RecordFilter(supplier_id=uuid4())))
    with pytest.raises(ValidationError):
        asyncio.run(store.count_with_filter("menu_items", RecordFilter(window=TimeWindow(start=datetime(2024, 1, 1)))))


def test_out_of_range_rating_filters_are_rejected() -> None:
    store = InMemoryRecordStore()

    with pytest.raises(ValidationError):
        asyncio.run(store.count_with_filter("reviews", RecordFilter(min_rating=0)))
    with pytest.raises(ValidationError):
        asyncio.run(store.count_with_filter("reviews", RecordFilter(min_rating=4, max_rating=2)))


def test_group_and_summarize_whole_set_and_empty_set(make_order) -> None:
    store = InMemoryRecordStore(orders=[make_order(20), make_order(10)])

    summaries = asyncio.run(store.group_and_summarize("orders", value_field="total_amount"))
    empty = asyncio.run(
        store.group_and_summarize("orders", RecordFilter(statuses=("served",)), value_field="total_amount")
    )

    assert len(summaries) == 1
    assert summaries[0].key is None
    assert summaries[0].count == 2
    assert summaries[0].total == pytest.approx(30)
    assert summaries[0].average == pytest.approx(15)
    assert empty == []


def test_summarize_records_groups_in_first_seen_order_and_normalizes_uuid_keys() -> None:
    first, second = uuid4(), uuid4()
    rows = [
        {"menu_item_id": second, "rating": 4},
        {"menu_item_id": first, "rating": 2},
        {"menu_item_id": second, "rating": 5},
    ]

    summaries = summarize_records(rows, group_by="menu_item_id", value_field="rating")

    assert [summary.key for summary in summaries] == [str(second), str(first)]
    assert summaries[0].values == (4.0, 5.0)
    assert summaries[0].minimum == 4
    assert summaries[0].maximum == 5


def test_apply_record_filter_translates_every_filter() -> None:
    supplier_id = uuid4()
    start = datetime.fromisoformat("2024-05-01T00:00:00+00:00")
    end = datetime.fromisoformat("2024-05-02T00:00:00+00:00")
    query = _FakeQuery()

    apply_record_filter(
        query,
        "purchase_orders",
        RecordFilter(
            supplier_id=supplier_id,
            statuses=("delivered",),
            exclude_statuses=("cancelled",),
            window=TimeWindow(start=start, end=end),
            require_actual_delivery=True,
        ),
    )

    assert ("eq", "supplier_id", str(supplier_id)) in query.calls
    assert ("in_", "status", ["delivered"]) in query.calls
    assert ("in_", "status", ["cancelled"]) in query.calls
    assert ("gte", "order_date", "2024-05-01T00:00:00Z") in query.calls
    assert ("lt", "order_date", "2024-05-02T00:00:00Z") in query.calls
    assert ("is_", "actual_delivery", "null") in query.calls
    assert query.calls.count(("not",)) == 2


def test_postgrest_find_parses_rows_into_records(fake_postgrest) -> None:
    order_id, item_id = uuid4(), uuid4()
    query = _FakeQuery(
        rows=[
            {
                "id": str(order_id),
                "order_date": "2024-05-15T10:00:00+00:00",
                "status": "served",
                "total_amount": 42.5,
                "items": [{"menu_item_id": str(item_id), "quantity": 2, "price": 21.25}],
                "table_number": 7,
            }
        ]
    )
    client = fake_postgrest(query)
    store = PostgrestRecordStore("token")

    rows = asyncio.run(store.find_with_filter("orders", RecordFilter(exclude_statuses=("cancelled",)), order_by="order_date"))

    assert client.tables == ["orders"]
    assert isinstance(rows[0], Order)
    assert rows[0].id == order_id
    assert rows[0].items[0].menu_item_id == item_id
    assert ("order", "order_date") in query.calls


def test_postgrest_count_uses_exact_count(fake_postgrest) -> None:
    query = _FakeQuery(count=17)
    fake_postgrest(query)

    count = asyncio.run(PostgrestRecordStore("token").count_with_filter("reviews", RecordFilter(min_rating=4)))

    assert count == 17
    assert ("gte", "rating", 4) in query.calls


def test_postgrest_summary_selects_only_needed_columns(fake_postgrest) -> None:
    query = _FakeQuery(rows=[{"id": "1", "rating": 5}, {"id": "2", "rating": 5}, {"id": "3", "rating": 3}])
    fake_postgrest(query)

    summaries = asyncio.run(
        PostgrestRecordStore("token").group_and_summarize("reviews", group_by="rating", value_field="rating")
    )

    assert ("select", ("id,rating",), {}) in query.calls
    assert {summary.key: summary.count for summary in summaries} == {5: 2, 3: 1}


def test_postgrest_errors_become_data_source_errors(fake_postgrest) -> None:
    fake_postgrest(_FakeQuery(error=PostgrestAPIError({"message": "permission denied", "code": "42501"})))

    with pytest.raises(DataSourceError):
        asyncio.run(PostgrestRecordStore("token").find_with_filter("reviews"))


def test_postgrest_skips_the_round_trip_for_empty_id_sets(fake_postgrest) -> None:
    client = fake_postgrest(_FakeQuery())

    rows = asyncio.run(PostgrestRecordStore("token").find_with_filter("menu_items", RecordFilter(ids=())))

    assert rows == []
    assert client.tables == []


def test_postgrest_client_bounds_every_call_with_the_timeout(monkeypatch) -> None:
    created = {}

    class _RecordingClient:
        def __init__(self, base_url, **kwargs):
            created.update(kwargs, base_url=base_url)

        def auth(self, token):
            created["token"] = token

    monkeypatch.setattr(postgrest_client_module, "SUPABASE_URL", "https://example.supabase.co/")
    monkeypatch.setattr(postgrest_client_module, "SUPABASE_ANON_KEY", "anon-key")
    monkeypatch.setattr(postgrest_client_module, "SyncPostgrestClient", _RecordingClient)

    postgrest_client_module.create_postgrest_client("token", timeout=2.5)

    assert created["base_url"] == "https://example.supabase.co/rest/v1"
    assert created["token"] == "token"
    assert created["timeout"] == Timeout(2.5)


def test_postgrest_store_passes_its_timeout_to_the_client(monkeypatch) -> None:
    seen = []

    def _factory(access_token, **kwargs):
        seen.append(kwargs["timeout"])
        return _FakeClient(_FakeQuery(count=0))

    monkeypatch.setattr(record_store_module, "create_postgrest_client", _factory)

    asyncio.run(PostgrestRecordStore("token", timeout=3.0).count_with_filter("orders"))

    assert seen == [3.0]
