"""Read-only records consumed by the analytics engine and the typed query filter."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional, Tuple, Type
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from restaurant_analytics.services.errors import ValidationError
from restaurant_analytics.services.time_windows import TimeWindow

Collection = Literal["orders", "reviews", "purchase_orders", "menu_items"]

OrderStatus = Literal["pending", "confirmed", "preparing", "ready", "served", "cancelled"]
ORDER_STATUSES: Tuple[str, ...] = ("pending", "confirmed", "preparing", "ready", "served", "cancelled")

PurchaseOrderStatus = Literal["pending", "approved", "ordered", "delivered", "cancelled"]


class OrderLine(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    menu_item_id: UUID
    quantity: int = Field(..., ge=1)
    price: float = Field(..., ge=0)


class Order(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    id: UUID
    order_date: datetime
    status: OrderStatus
    total_amount: float = Field(..., ge=0)
    items: List[OrderLine] = Field(default_factory=list)


class Review(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    id: UUID
    user_id: UUID
    menu_item_id: UUID
    rating: int = Field(..., ge=1, le=5)
    comment: Optional[str] = None
    date: datetime


class PurchaseOrder(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    id: UUID
    supplier_id: UUID
    status: PurchaseOrderStatus
    total_amount: float = Field(..., ge=0)
    order_date: Optional[datetime] = None
    expected_delivery: datetime
    actual_delivery: Optional[datetime] = None


class MenuItem(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    id: UUID
    name: str
    price: float = Field(default=0, ge=0)
    category_id: Optional[UUID] = None


COLLECTION_MODELS: Dict[str, Type[BaseModel]] = {
    "orders": Order,
    "reviews": Review,
    "purchase_orders": PurchaseOrder,
    "menu_items": MenuItem,
}

# Column a TimeWindow applies to, per collection.
DATE_FIELDS: Dict[str, str] = {
    "orders": "order_date",
    "reviews": "date",
    "purchase_orders": "order_date",
}

# Filters that only make sense on some collections.
_FILTER_SCOPES: Dict[str, Tuple[str, ...]] = {
    "menu_item_ids": ("reviews",),
    "user_id": ("reviews",),
    "supplier_id": ("purchase_orders",),
    "statuses": ("orders", "purchase_orders"),
    "exclude_statuses": ("orders", "purchase_orders"),
    "window": ("orders", "reviews", "purchase_orders"),
    "min_rating": ("reviews",),
    "max_rating": ("reviews",),
    "require_actual_delivery": ("purchase_orders",),
}


class RecordFilter(BaseModel):
    """Every filter the record store understands.

    ``ids``: record id in set. ``menu_item_ids``: review menu item in set.
    ``user_id`` / ``supplier_id``: equality. ``statuses``: status in set.
    ``exclude_statuses``: status not in set. ``window``: the collection date
    column lies in the window. ``min_rating`` / ``max_rating``: inclusive
    rating bounds. ``require_actual_delivery``: the purchase order has been
    received.
    """

    model_config = ConfigDict(frozen=True, extra="forbid", arbitrary_types_allowed=True)

    ids: Optional[Tuple[UUID, ...]] = None
    menu_item_ids: Optional[Tuple[UUID, ...]] = None
    user_id: Optional[UUID] = None
    supplier_id: Optional[UUID] = None
    statuses: Optional[Tuple[str, ...]] = None
    exclude_statuses: Tuple[str, ...] = ()
    window: Optional[TimeWindow] = None
    min_rating: Optional[int] = None
    max_rating: Optional[int] = None
    require_actual_delivery: bool = False

    def validate_for(self, collection: str) -> "RecordFilter":
        """Reject filters that do not apply to ``collection`` or are out of range."""

        if collection not in COLLECTION_MODELS:
            raise ValidationError(f"Unknown collection '{collection}'.")
        for name, scopes in _FILTER_SCOPES.items():
            if self._is_set(name) and collection not in scopes:
                raise ValidationError(f"Filter '{name}' does not apply to {collection}.")
        for bound in (self.min_rating, self.max_rating):
            if bound is not None and not 1 <= bound <= 5:
                raise ValidationError("Rating filters must be between 1 and 5.")
        if self.min_rating is not None and self.max_rating is not None and self.min_rating > self.max_rating:
            raise ValidationError("min_rating cannot exceed max_rating.")
        return self

    def matches(self, record: BaseModel, collection: str) -> bool:
        """Evaluate the filter against one record, in memory."""

        data: Dict[str, Any] = record.__dict__
        if self.ids is not None and data.get("id") not in self.ids:
            return False
        if self.menu_item_ids is not None and data.get("menu_item_id") not in self.menu_item_ids:
            return False
        if self.user_id is not None and data.get("user_id") != self.user_id:
            return False
        if self.supplier_id is not None and data.get("supplier_id") != self.supplier_id:
            return False
        if self.statuses is not None and data.get("status") not in self.statuses:
            return False
        if self.exclude_statuses and data.get("status") in self.exclude_statuses:
            return False
        if self.window is not None and not self.window.is_unbounded:
            instant = data.get(DATE_FIELDS[collection])
            if instant is None or not self.window.contains(instant):
                return False
        if self.min_rating is not None and data.get("rating", 0) < self.min_rating:
            return False
        if self.max_rating is not None and data.get("rating", 0) > self.max_rating:
            return False
        if self.require_actual_delivery and data.get("actual_delivery") is None:
            return False
        return True

    def _is_set(self, name: str) -> bool:
        value = getattr(self, name)
        if name == "window":
            return value is not None and not value.is_unbounded
        if isinstance(value, bool):
            return value
        if isinstance(value, tuple) and name == "exclude_statuses":
            return bool(value)
        return value is not None


class GroupSummary(BaseModel):
    """Aggregates of ``value_field`` for one group (``key`` is None for the whole set)."""

    model_config = ConfigDict(frozen=True)

    key: Any = None
    count: int = 0
    total: float = 0
    average: Optional[float] = None
    minimum: Optional[float] = None
    maximum: Optional[float] = None
    values: Tuple[float, ...] = ()


__all__ = [
    "COLLECTION_MODELS",
    "Collection",
    "DATE_FIELDS",
    "GroupSummary",
    "MenuItem",
    "ORDER_STATUSES",
    "Order",
    "OrderLine",
    "OrderStatus",
    "PurchaseOrder",
    "PurchaseOrderStatus",
    "RecordFilter",
    "Review",
]
