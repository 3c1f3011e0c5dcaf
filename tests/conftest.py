from datetime import datetime, timedelta
from pathlib import Path
from typing import Iterable, Optional, Tuple
from uuid import UUID, uuid4
from zoneinfo import ZoneInfo
import sys

import pytest

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from restaurant_analytics.services.analytics_service import MetricsAggregator
from restaurant_analytics.services.record_store import RecordStore
from restaurant_analytics.services.records import MenuItem, Order, OrderLine, PurchaseOrder, Review

PARIS = ZoneInfo("Europe/Paris")
NOW = datetime(2024, 5, 15, 12, 0, tzinfo=PARIS)


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def make_order():
    def _make(
        total: float,
        status: str = "confirmed",
        order_date: datetime = NOW,
        items: Iterable[Tuple[UUID, int, float]] = (),
    ) -> Order:
        return Order(
            id=uuid4(),
            order_date=order_date,
            status=status,
            total_amount=total,
            items=[OrderLine(menu_item_id=item_id, quantity=qty, price=price) for item_id, qty, price in items],
        )

    return _make


@pytest.fixture
def make_review():
    def _make(
        menu_item_id: UUID,
        rating: int,
        date: datetime = NOW,
        user_id: Optional[UUID] = None,
        comment: Optional[str] = None,
    ) -> Review:
        return Review(
            id=uuid4(),
            user_id=user_id or uuid4(),
            menu_item_id=menu_item_id,
            rating=rating,
            comment=comment,
            date=date,
        )

    return _make


@pytest.fixture
def make_menu_item():
    def _make(name: str, price: float = 12.0, category_id: Optional[UUID] = None, item_id: Optional[UUID] = None) -> MenuItem:
        return MenuItem(id=item_id or uuid4(), name=name, price=price, category_id=category_id)

    return _make


@pytest.fixture
def make_purchase_order():
    def _make(
        supplier_id: UUID,
        total: float = 100.0,
        status: str = "delivered",
        delay_days: Optional[float] = 0,
        expected: datetime = NOW - timedelta(days=10),
    ) -> PurchaseOrder:
        actual = expected + timedelta(days=delay_days) if delay_days is not None else None
        return PurchaseOrder(
            id=uuid4(),
            supplier_id=supplier_id,
            status=status,
            total_amount=total,
            order_date=expected - timedelta(days=3),
            expected_delivery=expected,
            actual_delivery=actual,
        )

    return _make


@pytest.fixture
def aggregator_for():
    def _build(store: RecordStore, timeout: Optional[float] = 5.0) -> MetricsAggregator:
        return MetricsAggregator(store, clock=lambda: NOW, timezone_name="Europe/Paris", timeout=timeout)

    return _build

