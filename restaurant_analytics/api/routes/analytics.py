"""Analytics endpoints: order statistics, rating insights and supplier performance."""

from __future__ import annotations

import logging
from typing import NoReturn, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query

from restaurant_analytics.schemas import (
    CategoryRatingsReport,
    ComparisonReport,
    MenuItemRatingsReport,
    RankedItemsReport,
    RatingAnalyticsReport,
    RatingDistributionReport,
    RatingReport,
    RatingTrendsReport,
    StatsReport,
    SupplierPerformanceReport,
    TrendReport,
    UserRatingHistoryReport,
)
from restaurant_analytics.services.analytics_service import MetricsAggregator
from restaurant_analytics.services.errors import AnalyticsError, NotFoundError, ValidationError
from restaurant_analytics.services.postgrest_client import extract_bearer_token
from restaurant_analytics.services.record_store import PostgrestRecordStore
from restaurant_analytics.services.time_windows import parse_date_input

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Analytics"])


async def get_aggregator(
    authorization: Optional[str] = Header(default=None, alias="Authorization"),
) -> MetricsAggregator:
    """Build an aggregator reading Supabase with the caller's token."""

    access_token = extract_bearer_token(authorization)
    return MetricsAggregator(PostgrestRecordStore(access_token))


def raise_http_error(exc: AnalyticsError) -> NoReturn:
    """Map engine errors to HTTP responses."""

    if isinstance(exc, ValidationError):
        raise HTTPException(status_code=400, detail=exc.message) from exc
    if isinstance(exc, NotFoundError):
        raise HTTPException(status_code=404, detail=exc.message) from exc
    logger.error("Analytics request failed: %s", exc.message)
    raise HTTPException(status_code=502, detail="Analytics data source unavailable.") from exc


@router.get("/stats/orders", response_model=StatsReport)
async def order_stats_endpoint(
    aggregator: MetricsAggregator = Depends(get_aggregator),
) -> StatsReport:
    try:
        return await aggregator.get_order_stats()
    except AnalyticsError as exc:
        raise_http_error(exc)


@router.get("/stats/trend", response_model=TrendReport)
async def trend_endpoint(current: float, previous: float) -> TrendReport:
    return MetricsAggregator.calculate_trend(current, previous)


@router.get("/ratings/statistics", response_model=RatingReport)
async def rating_statistics_endpoint(
    menu_item: Optional[str] = Query(default=None, alias="menuItem"),
    user: Optional[str] = Query(default=None),
    date_from: Optional[str] = Query(default=None, alias="dateFrom"),
    date_to: Optional[str] = Query(default=None, alias="dateTo"),
    day: Optional[str] = Query(default=None),
    min_rating: Optional[int] = Query(default=None, alias="minRating"),
    max_rating: Optional[int] = Query(default=None, alias="maxRating"),
    aggregator: MetricsAggregator = Depends(get_aggregator),
) -> RatingReport:
    try:
        return await aggregator.get_rating_statistics(
            menu_item_id=menu_item,
            user_id=user,
            date_from=parse_date_input(date_from, field="dateFrom"),
            date_to=parse_date_input(date_to, field="dateTo"),
            day=parse_date_input(day, field="day"),
            min_rating=min_rating,
            max_rating=max_rating,
        )
    except AnalyticsError as exc:
        raise_http_error(exc)


@router.get("/ratings/distribution", response_model=RatingDistributionReport)
async def rating_distribution_endpoint(
    menu_item: Optional[str] = Query(default=None, alias="menuItem"),
    date_from: Optional[str] = Query(default=None, alias="dateFrom"),
    date_to: Optional[str] = Query(default=None, alias="dateTo"),
    day: Optional[str] = Query(default=None),
    aggregator: MetricsAggregator = Depends(get_aggregator),
) -> RatingDistributionReport:
    try:
        return await aggregator.get_rating_distribution(
            menu_item_id=menu_item,
            date_from=parse_date_input(date_from, field="dateFrom"),
            date_to=parse_date_input(date_to, field="dateTo"),
            day=parse_date_input(day, field="day"),
        )
    except AnalyticsError as exc:
        raise_http_error(exc)


@router.get("/ratings/menu-item/{menu_item_id}", response_model=MenuItemRatingsReport)
async def menu_item_ratings_endpoint(
    menu_item_id: str,
    aggregator: MetricsAggregator = Depends(get_aggregator),
) -> MenuItemRatingsReport:
    try:
        return await aggregator.get_menu_item_ratings(menu_item_id)
    except AnalyticsError as exc:
        raise_http_error(exc)


@router.get("/ratings/user/{user_id}", response_model=UserRatingHistoryReport)
async def user_rating_history_endpoint(
    user_id: str,
    aggregator: MetricsAggregator = Depends(get_aggregator),
) -> UserRatingHistoryReport:
    try:
        return await aggregator.get_user_rating_history(user_id)
    except AnalyticsError as exc:
        raise_http_error(exc)


@router.get("/ratings/top-rated", response_model=RankedItemsReport)
async def top_rated_endpoint(
    limit: int = Query(default=10),
    min_reviews: int = Query(default=1, alias="minReviews"),
    aggregator: MetricsAggregator = Depends(get_aggregator),
) -> RankedItemsReport:
    try:
        return await aggregator.get_top_rated_items(limit=limit, min_reviews=min_reviews)
    except AnalyticsError as exc:
        raise_http_error(exc)


@router.get("/ratings/lowest-rated", response_model=RankedItemsReport)
async def lowest_rated_endpoint(
    limit: int = Query(default=10),
    min_reviews: int = Query(default=1, alias="minReviews"),
    aggregator: MetricsAggregator = Depends(get_aggregator),
) -> RankedItemsReport:
    try:
        return await aggregator.get_lowest_rated_items(limit=limit, min_reviews=min_reviews)
    except AnalyticsError as exc:
        raise_http_error(exc)


@router.get("/ratings/trends", response_model=RatingTrendsReport)
async def rating_trends_endpoint(
    period: str = Query(default="day"),
    days: int = Query(default=30),
    aggregator: MetricsAggregator = Depends(get_aggregator),
) -> RatingTrendsReport:
    try:
        return await aggregator.get_rating_trends(period=period, days=days)
    except AnalyticsError as exc:
        raise_http_error(exc)


@router.get("/ratings/compare", response_model=ComparisonReport)
async def compare_ratings_endpoint(
    items: Optional[str] = Query(default=None),
    aggregator: MetricsAggregator = Depends(get_aggregator),
) -> ComparisonReport:
    if not items:
        raise HTTPException(status_code=400, detail="Items parameter is required (comma-separated menu item IDs).")
    try:
        return await aggregator.compare_item_ratings(items.split(","))
    except AnalyticsError as exc:
        raise_http_error(exc)


@router.get("/ratings/by-category", response_model=CategoryRatingsReport)
async def category_ratings_endpoint(
    aggregator: MetricsAggregator = Depends(get_aggregator),
) -> CategoryRatingsReport:
    try:
        return await aggregator.get_category_ratings()
    except AnalyticsError as exc:
        raise_http_error(exc)


@router.get("/ratings/analytics", response_model=RatingAnalyticsReport)
async def rating_analytics_endpoint(
    aggregator: MetricsAggregator = Depends(get_aggregator),
) -> RatingAnalyticsReport:
    try:
        return await aggregator.get_rating_analytics()
    except AnalyticsError as exc:
        raise_http_error(exc)


@router.get("/suppliers/{supplier_id}/performance", response_model=SupplierPerformanceReport)
async def supplier_performance_endpoint(
    supplier_id: str,
    aggregator: MetricsAggregator = Depends(get_aggregator),
) -> SupplierPerformanceReport:
    try:
        return await aggregator.get_supplier_performance(supplier_id)
    except AnalyticsError as exc:
        raise_http_error(exc)
