from datetime import datetime
from typing import Dict, List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class ReportModel(BaseModel):
    """Immutable report value; attributes are snake_case, the wire format camelCase."""

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)


class BestSellingDish(ReportModel):
    name: str
    quantity: int
    revenue: float


class StatsReport(ReportModel):
    daily_earnings: float
    weekly_earnings: float
    yearly_earnings: float
    today_order_count: int
    avg_order_value: float
    orders_by_status: Dict[str, int]
    best_selling_dishes: List[BestSellingDish] = Field(default_factory=list)


class RatingDistributionEntry(ReportModel):
    rating: int
    count: int


class RatingReport(ReportModel):
    total_reviews: int
    average_rating: float
    highest_rating: int
    lowest_rating: int
    distribution: List[RatingDistributionEntry]


class RatingDistributionReport(ReportModel):
    distribution: List[RatingDistributionEntry]
    total_reviews: int


class MenuItemSummary(ReportModel):
    id: UUID
    name: str
    price: float
    category_id: Optional[UUID] = None


class ReviewEntry(ReportModel):
    id: UUID
    user_id: UUID
    menu_item_id: UUID
    rating: int
    comment: Optional[str] = None
    date: datetime


class UserReviewEntry(ReviewEntry):
    menu_item: Optional[MenuItemSummary] = Field(
        default=None,
        description="Reviewed dish; null when it was removed from the menu",
    )


class MenuItemRatingsReport(ReportModel):
    menu_item: MenuItemSummary
    reviews: List[ReviewEntry]
    statistics: RatingReport


class UserRatingHistoryReport(ReportModel):
    user_id: UUID
    reviews: List[UserReviewEntry]
    statistics: RatingReport


class RankedItem(ReportModel):
    menu_item: MenuItemSummary
    average_rating: float
    review_count: int


class RankedItemsReport(ReportModel):
    count: int
    items: List[RankedItem]


class RatingTrendPoint(ReportModel):
    period: str
    average_rating: float
    review_count: int
    date: datetime


class RatingTrendsReport(ReportModel):
    trends: List[RatingTrendPoint]
    period: Literal["day", "week", "month"]
    days_analyzed: int


class ItemComparison(ReportModel):
    menu_item: MenuItemSummary
    average_rating: float
    review_count: int
    ratings: List[int]


class ComparisonReport(ReportModel):
    count: int
    items: List[ItemComparison]
    ignored_ids: List[str] = Field(
        default_factory=list,
        description="Requested identifiers that were not valid menu item ids",
    )


class CategoryRating(ReportModel):
    category_id: Optional[UUID]
    average_rating: float
    review_count: int
    item_count: int


class CategoryRatingsReport(ReportModel):
    count: int
    categories: List[CategoryRating]


class RecentActivityPoint(ReportModel):
    date: str
    review_count: int
    average_rating: float


class RatingAnalyticsReport(ReportModel):
    overview: RatingReport
    recent_activity: List[RecentActivityPoint]
    top_categories: List[CategoryRating]


class DeliveryPerformance(ReportModel):
    avg_delivery_delay: float = Field(description="Mean delay in days; negative means early")
    on_time_rate: float


class SupplierOrderStatistics(ReportModel):
    total_orders: int
    total_spent: float


class SupplierPerformanceReport(ReportModel):
    supplier_id: UUID
    delivery_performance: DeliveryPerformance
    order_statistics: SupplierOrderStatistics


class TrendReport(ReportModel):
    current: float
    previous: float
    trend: float
