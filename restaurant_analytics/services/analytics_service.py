"""Metrics aggregation over orders, reviews and purchase orders.

Every operation follows the same pass: validate the request, fan out the
independent read queries, wait for all of them (any failure aborts the whole
report), derive the metrics and assemble one immutable report.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Sequence, Tuple, Union
from uuid import UUID

from restaurant_analytics.config.analytics_settings import (
    ANALYTICS_BEST_SELLER_LIMIT,
    ANALYTICS_QUERY_TIMEOUT_SECONDS,
    ANALYTICS_RECENT_ACTIVITY_DAYS,
    ANALYTICS_TIMEZONE,
)
from restaurant_analytics.schemas import (
    BestSellingDish,
    CategoryRating,
    CategoryRatingsReport,
    ComparisonReport,
    DeliveryPerformance,
    ItemComparison,
    MenuItemRatingsReport,
    MenuItemSummary,
    RankedItem,
    RankedItemsReport,
    RatingAnalyticsReport,
    RatingDistributionEntry,
    RatingDistributionReport,
    RatingReport,
    RatingTrendPoint,
    RatingTrendsReport,
    RecentActivityPoint,
    ReviewEntry,
    StatsReport,
    SupplierOrderStatistics,
    SupplierPerformanceReport,
    TrendReport,
    UserRatingHistoryReport,
    UserReviewEntry,
)
from restaurant_analytics.services.distribution import RATING_DOMAIN, build_distribution
from restaurant_analytics.services.errors import DataSourceError, NotFoundError, ValidationError
from restaurant_analytics.services.fan_out import gather_all_or_nothing
from restaurant_analytics.services.ranking import (
    DEFAULT_LIMIT,
    DEFAULT_MIN_SAMPLES,
    RankedGroup,
    rank_groups,
    validate_ranking,
)
from restaurant_analytics.services.ratios import average_rounded, fraction_true, trend
from restaurant_analytics.services.record_store import RecordStore
from restaurant_analytics.services.records import (
    ORDER_STATUSES,
    GroupSummary,
    MenuItem,
    Order,
    RecordFilter,
    Review,
)
from restaurant_analytics.services.time_windows import DateInput, TimeWindow, TimeWindowResolver, as_aware

logger = logging.getLogger(__name__)

TREND_PERIODS = ("day", "week", "month")
TOP_CATEGORY_LIMIT = 5
SECONDS_PER_DAY = 86400
EXCLUDED_FROM_REVENUE = ("cancelled",)

Identifier = Union[str, UUID]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MetricsAggregator:
    """Builds analytics reports from a read-only record store."""

    def __init__(
        self,
        store: RecordStore,
        *,
        clock: Callable[[], datetime] = _utcnow,
        timezone_name: str = ANALYTICS_TIMEZONE,
        timeout: Optional[float] = ANALYTICS_QUERY_TIMEOUT_SECONDS,
        best_seller_limit: int = ANALYTICS_BEST_SELLER_LIMIT,
    ) -> None:
        self.store = store
        self.clock = clock
        self.timezone_name = timezone_name
        self.timeout = timeout
        self.best_seller_limit = best_seller_limit

    # -- order statistics -------------------------------------------------

    async def get_order_stats(self) -> StatsReport:
        resolver = self._resolver()

        def revenue_filter(window: TimeWindow) -> RecordFilter:
            return RecordFilter(window=window, exclude_statuses=EXCLUDED_FROM_REVENUE)

        results = await self._fan_out(
            "order statistics",
            daily=self.store.group_and_summarize(
                "orders", revenue_filter(resolver.today()), value_field="total_amount"
            ),
            weekly=self.store.group_and_summarize(
                "orders", revenue_filter(resolver.last_days(7)), value_field="total_amount"
            ),
            yearly=self.store.group_and_summarize(
                "orders", revenue_filter(resolver.year_to_date()), value_field="total_amount"
            ),
            statuses=self.store.group_and_summarize(
                "orders", RecordFilter(window=resolver.today()), group_by="status"
            ),
            orders=self.store.find_with_filter(
                "orders", RecordFilter(exclude_statuses=EXCLUDED_FROM_REVENUE), order_by="order_date"
            ),
            menu=self.store.find_with_filter("menu_items"),
        )

        daily = _single(results["daily"])
        status_counts = {summary.key: summary.count for summary in results["statuses"]}
        return StatsReport(
            daily_earnings=_money(daily.total),
            weekly_earnings=_money(_single(results["weekly"]).total),
            yearly_earnings=_money(_single(results["yearly"]).total),
            today_order_count=daily.count,
            avg_order_value=average_rounded(daily.total, daily.count),
            orders_by_status=dict(checked_distribution(status_counts, ORDER_STATUSES, context="order status breakdown")),
            best_selling_dishes=best_selling_dishes(results["orders"], results["menu"], self.best_seller_limit),
        )

    @staticmethod
    def calculate_trend(current: float, previous: float) -> TrendReport:
        return TrendReport(current=current, previous=previous, trend=trend(current, previous))

    # -- rating statistics ------------------------------------------------

    async def get_rating_statistics(
        self,
        *,
        menu_item_id: Optional[Identifier] = None,
        user_id: Optional[Identifier] = None,
        date_from: Optional[DateInput] = None,
        date_to: Optional[DateInput] = None,
        day: Optional[DateInput] = None,
        min_rating: Optional[int] = None,
        max_rating: Optional[int] = None,
    ) -> RatingReport:
        """Totals, 2dp average, extremes and the full 1..5 distribution."""

        record_filter = self._review_filter(
            menu_item_id=menu_item_id,
            user_id=user_id,
            date_from=date_from,
            date_to=date_to,
            day=day,
            min_rating=min_rating,
            max_rating=max_rating,
        )
        results = await self._fan_out(
            "rating statistics",
            by_rating=self._ratings_by_value(record_filter),
        )
        return rating_report(results["by_rating"])

    async def get_rating_distribution(
        self,
        *,
        menu_item_id: Optional[Identifier] = None,
        date_from: Optional[DateInput] = None,
        date_to: Optional[DateInput] = None,
        day: Optional[DateInput] = None,
    ) -> RatingDistributionReport:
        record_filter = self._review_filter(menu_item_id=menu_item_id, date_from=date_from, date_to=date_to, day=day)
        results = await self._fan_out(
            "rating distribution",
            by_rating=self._ratings_by_value(record_filter),
        )
        report = rating_report(results["by_rating"])
        return RatingDistributionReport(distribution=report.distribution, total_reviews=report.total_reviews)

    async def get_menu_item_ratings(self, menu_item_id: Identifier) -> MenuItemRatingsReport:
        item_id = parse_identifier(menu_item_id, label="menu item")
        record_filter = RecordFilter(menu_item_ids=(item_id,))
        results = await self._fan_out(
            "menu item ratings",
            reviews=self.store.find_with_filter("reviews", record_filter, order_by="date", descending=True),
            by_rating=self._ratings_by_value(record_filter),
            menu_item=self.store.find_with_filter("menu_items", RecordFilter(ids=(item_id,))),
        )
        if not results["menu_item"]:
            raise NotFoundError("Menu item not found.")
        return MenuItemRatingsReport(
            menu_item=menu_item_summary(results["menu_item"][0]),
            reviews=[review_entry(review) for review in results["reviews"]],
            statistics=rating_report(results["by_rating"]),
        )

    async def get_user_rating_history(self, user_id: Identifier) -> UserRatingHistoryReport:
        user_uuid = parse_identifier(user_id, label="user")
        record_filter = RecordFilter(user_id=user_uuid)
        results = await self._fan_out(
            "user rating history",
            reviews=self.store.find_with_filter("reviews", record_filter, order_by="date", descending=True),
            by_rating=self._ratings_by_value(record_filter),
            menu=self.store.find_with_filter("menu_items"),
        )
        catalog = _catalog(results["menu"])
        return UserRatingHistoryReport(
            user_id=user_uuid,
            reviews=[
                user_review_entry(review, catalog.get(str(review.menu_item_id))) for review in results["reviews"]
            ],
            statistics=rating_report(results["by_rating"]),
        )

    # -- rankings ---------------------------------------------------------

    async def get_top_rated_items(
        self, *, limit: int = DEFAULT_LIMIT, min_reviews: int = DEFAULT_MIN_SAMPLES
    ) -> RankedItemsReport:
        return await self._rank_items(limit=limit, min_reviews=min_reviews, lowest=False)

    async def get_lowest_rated_items(
        self, *, limit: int = DEFAULT_LIMIT, min_reviews: int = DEFAULT_MIN_SAMPLES
    ) -> RankedItemsReport:
        return await self._rank_items(limit=limit, min_reviews=min_reviews, lowest=True)

    async def _rank_items(self, *, limit: int, min_reviews: int, lowest: bool) -> RankedItemsReport:
        validate_ranking(limit, min_reviews)
        results = await self._fan_out(
            "lowest rated items" if lowest else "top rated items",
            groups=self._ratings_by_item(RecordFilter()),
            menu=self.store.find_with_filter("menu_items"),
        )
        catalog = _catalog(results["menu"])
        candidates = [
            RankedGroup(key=summary.key, primary=summary.average or 0, secondary=summary.count, payload=catalog[summary.key])
            for summary in results["groups"]
            if summary.key in catalog
        ]
        ranked = rank_groups(candidates, limit=limit, min_samples=min_reviews, lowest=lowest)
        items = [
            RankedItem(
                menu_item=menu_item_summary(group.payload),
                average_rating=round(group.primary, 2),
                review_count=int(group.secondary),
            )
            for group in ranked
        ]
        return RankedItemsReport(count=len(items), items=items)

    async def compare_item_ratings(self, item_ids: Sequence[Identifier]) -> ComparisonReport:
        """Average, count and raw ratings for each requested item, best first.

        Malformed identifiers are left out of the comparison and listed in
        ``ignored_ids``. Items without any review are omitted.
        """

        valid, ignored = split_identifiers(item_ids)
        if not valid:
            raise ValidationError("No valid menu item IDs provided.")
        if ignored:
            logger.info("Ignoring malformed menu item ids in rating comparison: %s", ", ".join(ignored))

        selected = tuple(valid)
        results = await self._fan_out(
            "rating comparison",
            groups=self._ratings_by_item(RecordFilter(menu_item_ids=selected)),
            menu=self.store.find_with_filter("menu_items", RecordFilter(ids=selected)),
        )
        catalog = _catalog(results["menu"])
        candidates = [
            RankedGroup(
                key=summary.key,
                primary=summary.average or 0,
                secondary=summary.count,
                payload=(catalog[summary.key], summary),
            )
            for summary in results["groups"]
            if summary.key in catalog
        ]
        items = []
        for group in rank_groups(candidates, limit=None):
            menu_item, summary = group.payload
            items.append(
                ItemComparison(
                    menu_item=menu_item_summary(menu_item),
                    average_rating=round(group.primary, 2),
                    review_count=summary.count,
                    ratings=[int(value) for value in summary.values],
                )
            )
        return ComparisonReport(count=len(items), items=items, ignored_ids=ignored)

    # -- trends and rollups -----------------------------------------------

    async def get_rating_trends(self, *, period: str = "day", days: int = 30) -> RatingTrendsReport:
        if period not in TREND_PERIODS:
            raise ValidationError(f"period must be one of {', '.join(TREND_PERIODS)}.")
        if days < 1:
            raise ValidationError("days must be at least 1.")
        resolver = self._resolver()
        results = await self._fan_out(
            "rating trends",
            reviews=self.store.find_with_filter(
                "reviews", RecordFilter(window=resolver.last_days(days)), order_by="date"
            ),
        )
        trends = [
            RatingTrendPoint(period=label, average_rating=average, review_count=count, date=first_seen)
            for label, average, count, first_seen in bucket_reviews(results["reviews"], period, resolver)
        ]
        return RatingTrendsReport(trends=trends, period=period, days_analyzed=days)

    async def get_category_ratings(self) -> CategoryRatingsReport:
        results = await self._fan_out(
            "category ratings",
            groups=self._ratings_by_item(RecordFilter()),
            menu=self.store.find_with_filter("menu_items"),
        )
        categories = category_ratings(results["groups"], results["menu"])
        return CategoryRatingsReport(count=len(categories), categories=categories)

    async def get_rating_analytics(self) -> RatingAnalyticsReport:
        """Overview, distribution, recent daily activity and best categories in one pass."""

        resolver = self._resolver()
        results = await self._fan_out(
            "rating analytics",
            by_rating=self._ratings_by_value(RecordFilter()),
            recent=self.store.find_with_filter(
                "reviews",
                RecordFilter(window=resolver.last_days(ANALYTICS_RECENT_ACTIVITY_DAYS)),
                order_by="date",
            ),
            groups=self._ratings_by_item(RecordFilter()),
            menu=self.store.find_with_filter("menu_items"),
        )
        recent_activity = [
            RecentActivityPoint(date=label, review_count=count, average_rating=average)
            for label, average, count, _ in bucket_reviews(results["recent"], "day", resolver)
        ]
        return RatingAnalyticsReport(
            overview=rating_report(results["by_rating"]),
            recent_activity=recent_activity,
            top_categories=category_ratings(results["groups"], results["menu"], limit=TOP_CATEGORY_LIMIT),
        )

    # -- suppliers --------------------------------------------------------

    async def get_supplier_performance(self, supplier_id: Identifier) -> SupplierPerformanceReport:
        supplier_uuid = parse_identifier(supplier_id, label="supplier")
        results = await self._fan_out(
            "supplier performance",
            deliveries=self.store.find_with_filter(
                "purchase_orders",
                RecordFilter(supplier_id=supplier_uuid, statuses=("delivered",), require_actual_delivery=True),
            ),
            totals=self.store.group_and_summarize(
                "purchase_orders",
                RecordFilter(supplier_id=supplier_uuid, statuses=("delivered",)),
                value_field="total_amount",
            ),
        )
        delays = [
            (as_aware(order.actual_delivery) - as_aware(order.expected_delivery)).total_seconds() / SECONDS_PER_DAY
            for order in results["deliveries"]
        ]
        totals = _single(results["totals"])
        return SupplierPerformanceReport(
            supplier_id=supplier_uuid,
            delivery_performance=DeliveryPerformance(
                avg_delivery_delay=average_rounded(sum(delays), len(delays)),
                on_time_rate=fraction_true(delay <= 0 for delay in delays),
            ),
            order_statistics=SupplierOrderStatistics(total_orders=totals.count, total_spent=_money(totals.total)),
        )

    # -- helpers ----------------------------------------------------------

    def _resolver(self) -> TimeWindowResolver:
        return TimeWindowResolver(self.clock(), self.timezone_name)

    async def _fan_out(self, context: str, **queries: Awaitable[Any]) -> Dict[str, Any]:
        return await gather_all_or_nothing(context, queries, timeout=self.timeout)

    def _ratings_by_value(self, record_filter: RecordFilter) -> Awaitable[List[GroupSummary]]:
        return self.store.group_and_summarize("reviews", record_filter, group_by="rating", value_field="rating")

    def _ratings_by_item(self, record_filter: RecordFilter) -> Awaitable[List[GroupSummary]]:
        return self.store.group_and_summarize("reviews", record_filter, group_by="menu_item_id", value_field="rating")

    def _review_filter(
        self,
        *,
        menu_item_id: Optional[Identifier] = None,
        user_id: Optional[Identifier] = None,
        date_from: Optional[DateInput] = None,
        date_to: Optional[DateInput] = None,
        day: Optional[DateInput] = None,
        min_rating: Optional[int] = None,
        max_rating: Optional[int] = None,
    ) -> RecordFilter:
        if day is not None and (date_from is not None or date_to is not None):
            raise ValidationError("Use either a specific day or a date range, not both.")
        resolver = self._resolver()
        window = resolver.specific_day(day) if day is not None else resolver.custom(date_from, date_to)
        item_id = parse_identifier(menu_item_id, label="menu item") if menu_item_id is not None else None
        record_filter = RecordFilter(
            menu_item_ids=(item_id,) if item_id is not None else None,
            user_id=parse_identifier(user_id, label="user") if user_id is not None else None,
            window=None if window.is_unbounded else window,
            min_rating=min_rating,
            max_rating=max_rating,
        )
        return record_filter.validate_for("reviews")


def checked_distribution(counts: Dict[Any, int], domain: Sequence[Any], *, context: str) -> List[Tuple[Any, int]]:
    """``build_distribution`` over store data; unexpected keys mean the store returned bad rows."""

    try:
        return build_distribution(counts, domain)
    except ValueError as exc:
        logger.error("%s returned values outside %s: %s", context, list(domain), exc)
        raise DataSourceError(f"{context} returned unexpected values.") from exc


def rating_report(by_rating: Iterable[GroupSummary]) -> RatingReport:
    """Build rating statistics from per-rating counts so totals always match the distribution."""

    counts = {summary.key: summary.count for summary in by_rating}
    distribution = checked_distribution(counts, RATING_DOMAIN, context="rating breakdown")
    total = sum(count for _, count in distribution)
    present = [rating for rating, count in distribution if count]
    return RatingReport(
        total_reviews=total,
        average_rating=average_rounded(sum(rating * count for rating, count in distribution), total),
        highest_rating=max(present) if present else 0,
        lowest_rating=min(present) if present else 0,
        distribution=[RatingDistributionEntry(rating=rating, count=count) for rating, count in distribution],
    )


def best_selling_dishes(orders: Iterable[Order], menu_items: Iterable[MenuItem], limit: int) -> List[BestSellingDish]:
    """Top dishes by quantity sold; equal quantities keep the order they were first sold in.

    Lines of dishes no longer on the menu are not counted.
    """

    names = {item.id: item.name for item in menu_items}
    totals: Dict[UUID, List[float]] = {}
    for order in orders:
        if order.status in EXCLUDED_FROM_REVENUE:
            continue
        for line in order.items:
            if line.menu_item_id not in names:
                continue
            entry = totals.setdefault(line.menu_item_id, [0, 0.0])
            entry[0] += line.quantity
            entry[1] += line.quantity * line.price
    ranked = sorted(totals.items(), key=lambda pair: -pair[1][0])
    return [
        BestSellingDish(name=names[item_id], quantity=int(quantity), revenue=_money(revenue))
        for item_id, (quantity, revenue) in ranked[:limit]
    ]


def category_ratings(
    item_groups: Iterable[GroupSummary],
    menu_items: Iterable[MenuItem],
    limit: Optional[int] = None,
) -> List[CategoryRating]:
    """Roll per-item rating summaries up to their menu category, best average first.

    Reviews of deleted items are skipped; uncategorized items share the ``None`` category.
    """

    catalog = _catalog(menu_items)
    rollup: Dict[Optional[UUID], Tuple[float, int, set]] = {}
    for summary in item_groups:
        item = catalog.get(summary.key)
        if item is None:
            continue
        total, count, items = rollup.get(item.category_id, (0.0, 0, set()))
        items.add(summary.key)
        rollup[item.category_id] = (total + summary.total, count + summary.count, items)

    groups = [
        RankedGroup(
            key="" if category_id is None else str(category_id),
            primary=total / count,
            secondary=count,
            payload=(category_id, len(items)),
        )
        for category_id, (total, count, items) in rollup.items()
        if count
    ]
    return [
        CategoryRating(
            category_id=group.payload[0],
            average_rating=round(group.primary, 2),
            review_count=int(group.secondary),
            item_count=group.payload[1],
        )
        for group in rank_groups(groups, limit=limit)
    ]


def bucket_reviews(
    reviews: Iterable[Review],
    period: str,
    resolver: TimeWindowResolver,
) -> List[Tuple[str, float, int, datetime]]:
    """Group reviews by local day, ISO week or month; chronological ``(label, avg, count, first)``."""

    buckets: Dict[str, List[Review]] = {}
    for review in reviews:
        local = as_aware(review.date).astimezone(resolver.tz)
        buckets.setdefault(period_label(local, period), []).append(review)

    points = []
    for label, grouped in buckets.items():
        ratings = [review.rating for review in grouped]
        first_seen = min(as_aware(review.date) for review in grouped)
        points.append((label, average_rounded(sum(ratings), len(ratings)), len(ratings), first_seen))
    points.sort(key=lambda point: point[3])
    return points


def period_label(instant: datetime, period: str) -> str:
    if period == "week":
        iso_year, iso_week, _ = instant.isocalendar()
        return f"{iso_year}-W{iso_week:02d}"
    if period == "month":
        return instant.strftime("%Y-%m")
    return instant.date().isoformat()


def parse_identifier(value: Identifier, *, label: str) -> UUID:
    parsed = _coerce_uuid(value)
    if parsed is None:
        raise ValidationError(f"Invalid {label} ID format.")
    return parsed


def split_identifiers(values: Iterable[Identifier]) -> Tuple[List[UUID], List[str]]:
    """Return de-duplicated valid ids (request order) and the malformed inputs."""

    valid: List[UUID] = []
    ignored: List[str] = []
    for value in values:
        candidate = value if isinstance(value, UUID) else str(value).strip()
        if candidate == "":
            continue
        parsed = _coerce_uuid(candidate)
        if parsed is None:
            ignored.append(str(candidate))
        elif parsed not in valid:
            valid.append(parsed)
    return valid, ignored


def menu_item_summary(item: MenuItem) -> MenuItemSummary:
    return MenuItemSummary(id=item.id, name=item.name, price=item.price, category_id=item.category_id)


def review_entry(review: Review) -> ReviewEntry:
    return ReviewEntry(
        id=review.id,
        user_id=review.user_id,
        menu_item_id=review.menu_item_id,
        rating=review.rating,
        comment=review.comment,
        date=review.date,
    )


def user_review_entry(review: Review, menu_item: Optional[MenuItem]) -> UserReviewEntry:
    return UserReviewEntry(
        **review_entry(review).model_dump(),
        menu_item=menu_item_summary(menu_item) if menu_item is not None else None,
    )


def _coerce_uuid(value: Any) -> Optional[UUID]:
    if value is None:
        return None
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except (TypeError, ValueError):
        return None


def _catalog(menu_items: Iterable[MenuItem]) -> Dict[str, MenuItem]:
    return {str(item.id): item for item in menu_items}


def _single(summaries: Sequence[GroupSummary]) -> GroupSummary:
    return summaries[0] if summaries else GroupSummary()


def _money(value: float) -> float:
    return round(value, 2)


__all__ = [
    "MetricsAggregator",
    "TREND_PERIODS",
    "best_selling_dishes",
    "bucket_reviews",
    "category_ratings",
    "parse_identifier",
    "rating_report",
    "split_identifiers",
]
