"""Shared numeric semantics: rounded averages, fractions and trends."""

from __future__ import annotations

from typing import Iterable


def average_rounded(total: float, count: int, digits: int = 2) -> float:
    """``total / count`` rounded to ``digits`` places, ``0`` when there is nothing to average."""

    if not count:
        return 0
    return round(total / count, digits)


def fraction_true(flags: Iterable[bool]) -> float:
    """Share of truthy flags, in [0, 1]; ``0`` for an empty sequence."""

    total = 0
    hits = 0
    for flag in flags:
        total += 1
        if flag:
            hits += 1
    if not total:
        return 0
    return hits / total


def trend(current: float, previous: float) -> float:
    """Percent change from ``previous`` to ``current``.

    Growth from a zero baseline reads as 100; no growth from zero reads as 0.
    """

    if previous == 0:
        return 100 if current > 0 else 0
    return (current - previous) / previous * 100


__all__ = ["average_rounded", "fraction_true", "trend"]
