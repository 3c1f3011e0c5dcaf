"""Top/bottom K selection over grouped metrics."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, List, Optional

from restaurant_analytics.services.errors import ValidationError

DEFAULT_LIMIT = 10
DEFAULT_MIN_SAMPLES = 1


@dataclass(frozen=True)
class RankedGroup:
    """One group to rank: ``primary`` is the sorted metric, ``secondary`` the sample count."""

    key: str
    primary: float
    secondary: float
    payload: Any = None


def rank_groups(
    groups: Iterable[RankedGroup],
    *,
    limit: Optional[int] = DEFAULT_LIMIT,
    min_samples: int = DEFAULT_MIN_SAMPLES,
    lowest: bool = False,
) -> List[RankedGroup]:
    """Filter by ``min_samples`` then order by primary, secondary desc, key asc.

    ``lowest`` flips only the primary direction; larger samples still win ties.
    ``limit=None`` keeps every group that passes the filter.
    """

    validate_ranking(limit, min_samples)
    eligible = [group for group in groups if group.secondary >= min_samples]
    direction = 1 if lowest else -1
    eligible.sort(key=lambda group: (direction * group.primary, -group.secondary, group.key))
    if limit is None:
        return eligible
    return eligible[:limit]


def validate_ranking(limit: Optional[int], min_samples: int) -> None:
    if limit is not None and limit < 1:
        raise ValidationError("limit must be at least 1.")
    if min_samples < 1:
        raise ValidationError("The minimum number of samples must be at least 1.")


__all__ = ["DEFAULT_LIMIT", "DEFAULT_MIN_SAMPLES", "RankedGroup", "rank_groups", "validate_ranking"]
