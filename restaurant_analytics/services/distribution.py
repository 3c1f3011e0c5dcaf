"""Gap-free histograms over small finite domains."""

from __future__ import annotations

from typing import Hashable, List, Mapping, Sequence, Tuple, TypeVar

K = TypeVar("K", bound=Hashable)

RATING_DOMAIN: Tuple[int, ...] = (1, 2, 3, 4, 5)


def build_distribution(counts: Mapping[K, int], domain: Sequence[K]) -> List[Tuple[K, int]]:
    """Return ``(key, count)`` for every domain value, in domain order.

    Values absent from ``counts`` get a zero count. A key outside the domain
    raises ``ValueError`` so no record is ever dropped silently.
    """

    known = set(domain)
    if len(known) != len(domain):
        raise ValueError("Distribution domain contains duplicates.")
    unexpected = [key for key in counts if key not in known]
    if unexpected:
        raise ValueError(f"Keys outside the distribution domain: {unexpected!r}")
    return [(key, int(counts.get(key, 0))) for key in domain]


__all__ = ["RATING_DOMAIN", "build_distribution"]
