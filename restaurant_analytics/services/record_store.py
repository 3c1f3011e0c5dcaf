"""Record store collaborators used by the analytics engine.

The engine only reads: it finds, counts and groups records through the
``RecordStore`` interface. ``PostgrestRecordStore`` talks to Supabase,
``InMemoryRecordStore`` serves fixed record lists.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, TypeVar
from uuid import UUID

from httpx import HTTPError as HttpxError
from postgrest import APIError as PostgrestAPIError
from postgrest.types import CountMethod
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from restaurant_analytics.config.analytics_settings import ANALYTICS_QUERY_TIMEOUT_SECONDS
from restaurant_analytics.services.postgrest_client import create_postgrest_client, raise_data_source_error
from restaurant_analytics.services.records import (
    COLLECTION_MODELS,
    DATE_FIELDS,
    GroupSummary,
    RecordFilter,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RecordStore(ABC):
    """Read-only access to orders, reviews, purchase orders and the menu catalog."""

    async def find_with_filter(
        self,
        collection: str,
        record_filter: Optional[RecordFilter] = None,
        *,
        order_by: Optional[str] = None,
        descending: bool = False,
    ) -> List[Any]:
        record_filter = (record_filter or RecordFilter()).validate_for(collection)
        return await self._find(collection, record_filter, order_by, descending)

    async def count_with_filter(self, collection: str, record_filter: Optional[RecordFilter] = None) -> int:
        record_filter = (record_filter or RecordFilter()).validate_for(collection)
        return await self._count(collection, record_filter)

    async def group_and_summarize(
        self,
        collection: str,
        record_filter: Optional[RecordFilter] = None,
        *,
        group_by: Optional[str] = None,
        value_field: Optional[str] = None,
    ) -> List[GroupSummary]:
        """Group the filtered records by ``group_by`` and aggregate ``value_field``.

        Without ``group_by`` the whole filtered set is one group; an empty set
        yields no summary at all.
        """

        record_filter = (record_filter or RecordFilter()).validate_for(collection)
        return await self._summarize(collection, record_filter, group_by, value_field)

    @abstractmethod
    async def _find(
        self,
        collection: str,
        record_filter: RecordFilter,
        order_by: Optional[str],
        descending: bool,
    ) -> List[Any]:
        ...

    @abstractmethod
    async def _count(self, collection: str, record_filter: RecordFilter) -> int:
        ...

    @abstractmethod
    async def _summarize(
        self,
        collection: str,
        record_filter: RecordFilter,
        group_by: Optional[str],
        value_field: Optional[str],
    ) -> List[GroupSummary]:
        ...


def summarize_records(
    records: Iterable[Any],
    *,
    group_by: Optional[str] = None,
    value_field: Optional[str] = None,
) -> List[GroupSummary]:
    """Group records (models or row mappings) in first-seen order and aggregate a numeric field."""

    counts: Dict[Any, int] = {}
    values: Dict[Any, List[float]] = {}
    for record in records:
        key = _normalize_key(_field(record, group_by)) if group_by else None
        counts[key] = counts.get(key, 0) + 1
        bucket = values.setdefault(key, [])
        if value_field:
            value = _field(record, value_field)
            if value is not None:
                bucket.append(float(value))

    summaries: List[GroupSummary] = []
    for key, count in counts.items():
        bucket = values[key]
        total = sum(bucket)
        summaries.append(
            GroupSummary(
                key=key,
                count=count,
                total=total,
                average=total / len(bucket) if bucket else None,
                minimum=min(bucket) if bucket else None,
                maximum=max(bucket) if bucket else None,
                values=tuple(bucket),
            )
        )
    return summaries


def _field(record: Any, name: str) -> Any:
    if isinstance(record, Mapping):
        return record.get(name)
    return getattr(record, name, None)


def _normalize_key(value: Any) -> Any:
    if isinstance(value, UUID):
        return str(value)
    return value


class InMemoryRecordStore(RecordStore):
    """Serves fixed lists of records; every call yields to the event loop once."""

    def __init__(
        self,
        *,
        orders: Sequence[BaseModel] = (),
        reviews: Sequence[BaseModel] = (),
        purchase_orders: Sequence[BaseModel] = (),
        menu_items: Sequence[BaseModel] = (),
    ) -> None:
        self._records: Dict[str, List[BaseModel]] = {
            "orders": list(orders),
            "reviews": list(reviews),
            "purchase_orders": list(purchase_orders),
            "menu_items": list(menu_items),
        }

    async def _find(
        self,
        collection: str,
        record_filter: RecordFilter,
        order_by: Optional[str],
        descending: bool,
    ) -> List[Any]:
        await asyncio.sleep(0)
        rows = self._select(collection, record_filter)
        if order_by:
            rows.sort(key=lambda row: (getattr(row, order_by), str(getattr(row, "id", ""))), reverse=descending)
        return rows

    async def _count(self, collection: str, record_filter: RecordFilter) -> int:
        await asyncio.sleep(0)
        return len(self._select(collection, record_filter))

    async def _summarize(
        self,
        collection: str,
        record_filter: RecordFilter,
        group_by: Optional[str],
        value_field: Optional[str],
    ) -> List[GroupSummary]:
        await asyncio.sleep(0)
        rows = self._select(collection, record_filter)
        return summarize_records(rows, group_by=group_by, value_field=value_field)

    def _select(self, collection: str, record_filter: RecordFilter) -> List[Any]:
        return [row for row in self._records[collection] if record_filter.matches(row, collection)]


class PostgrestRecordStore(RecordStore):
    """Supabase-backed store; blocking PostgREST calls run in worker threads.

    PostgREST has no GROUP BY, so summaries are computed client-side over the
    filtered column set. Each HTTP call is bounded by ``timeout`` so a worker
    thread never outlives a cancelled request by more than that.
    """

    def __init__(
        self,
        access_token: str,
        *,
        api_key: Optional[str] = None,
        timeout: Optional[float] = ANALYTICS_QUERY_TIMEOUT_SECONDS,
    ) -> None:
        self.access_token = access_token
        self.api_key = api_key
        self.timeout = timeout

    async def _find(
        self,
        collection: str,
        record_filter: RecordFilter,
        order_by: Optional[str],
        descending: bool,
    ) -> List[Any]:
        if _selects_nothing(record_filter):
            return []

        def _request() -> List[Dict[str, Any]]:
            with self._client() as client:
                query = apply_record_filter(client.table(collection).select("*"), collection, record_filter)
                if order_by:
                    query = query.order(order_by, desc=descending).order("id")
                response = query.execute()
                return response.data or []

        rows = await self._run(_request, context=f"{collection} lookup")
        model = COLLECTION_MODELS[collection]
        try:
            return [model.model_validate(row) for row in rows]
        except PydanticValidationError as exc:
            raise_data_source_error(exc, context=f"{collection} decoding")

    async def _count(self, collection: str, record_filter: RecordFilter) -> int:
        if _selects_nothing(record_filter):
            return 0

        def _request() -> int:
            with self._client() as client:
                query = client.table(collection).select("id", count=CountMethod.exact)
                response = apply_record_filter(query, collection, record_filter).limit(1).execute()
                return int(response.count or 0)

        return await self._run(_request, context=f"{collection} count")

    async def _summarize(
        self,
        collection: str,
        record_filter: RecordFilter,
        group_by: Optional[str],
        value_field: Optional[str],
    ) -> List[GroupSummary]:
        if _selects_nothing(record_filter):
            return []
        columns = ["id"] + [name for name in (group_by, value_field) if name and name != "id"]

        def _request() -> List[Dict[str, Any]]:
            with self._client() as client:
                query = client.table(collection).select(",".join(dict.fromkeys(columns)))
                response = apply_record_filter(query, collection, record_filter).order("id").execute()
                return response.data or []

        rows = await self._run(_request, context=f"{collection} summary")
        return summarize_records(rows, group_by=group_by, value_field=value_field)

    def _client(self) -> Any:
        return create_postgrest_client(self.access_token, api_key=self.api_key, timeout=self.timeout)

    async def _run(self, request: Callable[[], T], *, context: str) -> T:
        try:
            return await asyncio.to_thread(request)
        except (PostgrestAPIError, HttpxError) as exc:
            raise_data_source_error(exc, context=context)


def apply_record_filter(query: Any, collection: str, record_filter: RecordFilter) -> Any:
    """Translate a ``RecordFilter`` into PostgREST filter calls."""

    if record_filter.ids is not None:
        query = query.in_("id", [str(value) for value in record_filter.ids])
    if record_filter.menu_item_ids is not None:
        query = query.in_("menu_item_id", [str(value) for value in record_filter.menu_item_ids])
    if record_filter.user_id is not None:
        query = query.eq("user_id", str(record_filter.user_id))
    if record_filter.supplier_id is not None:
        query = query.eq("supplier_id", str(record_filter.supplier_id))
    if record_filter.statuses is not None:
        query = query.in_("status", list(record_filter.statuses))
    if record_filter.exclude_statuses:
        query = query.not_.in_("status", list(record_filter.exclude_statuses))
    window = record_filter.window
    if window is not None and not window.is_unbounded:
        column = DATE_FIELDS[collection]
        if window.start is not None:
            query = query.gte(column, format_supabase_timestamp(window.start))
        if window.end is not None:
            end_value = format_supabase_timestamp(window.end)
            query = query.lte(column, end_value) if window.include_end else query.lt(column, end_value)
    if record_filter.min_rating is not None:
        query = query.gte("rating", record_filter.min_rating)
    if record_filter.max_rating is not None:
        query = query.lte("rating", record_filter.max_rating)
    if record_filter.require_actual_delivery:
        query = query.not_.is_("actual_delivery", "null")
    return query


def format_supabase_timestamp(value: datetime) -> str:
    normalized = value.astimezone(timezone.utc)
    return normalized.isoformat().replace("+00:00", "Z")


def _selects_nothing(record_filter: RecordFilter) -> bool:
    return record_filter.ids == () or record_filter.menu_item_ids == () or record_filter.statuses == ()


__all__ = [
    "InMemoryRecordStore",
    "PostgrestRecordStore",
    "RecordStore",
    "apply_record_filter",
    "format_supabase_timestamp",
    "summarize_records",
]
