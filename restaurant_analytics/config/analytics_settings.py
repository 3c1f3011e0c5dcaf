"""Tunables for the analytics engine, read once from the environment."""

from __future__ import annotations

import os

from dotenv import load_dotenv

load_dotenv()


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        return default


ANALYTICS_TIMEZONE = os.getenv("ANALYTICS_TIMEZONE", "Europe/Paris")
ANALYTICS_QUERY_TIMEOUT_SECONDS = _env_float("ANALYTICS_QUERY_TIMEOUT_SECONDS", 10.0)
ANALYTICS_BEST_SELLER_LIMIT = _env_int("ANALYTICS_BEST_SELLER_LIMIT", 5)
ANALYTICS_RECENT_ACTIVITY_DAYS = _env_int("ANALYTICS_RECENT_ACTIVITY_DAYS", 30)


__all__ = [
    "ANALYTICS_TIMEZONE",
    "ANALYTICS_QUERY_TIMEOUT_SECONDS",
    "ANALYTICS_BEST_SELLER_LIMIT",
    "ANALYTICS_RECENT_ACTIVITY_DAYS",
]
