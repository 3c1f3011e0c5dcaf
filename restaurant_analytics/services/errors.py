"""Errors raised by the analytics engine."""

from __future__ import annotations


class AnalyticsError(Exception):
    """Base class for every failure surfaced by the analytics engine."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(AnalyticsError):
    """The request is malformed; no query was issued."""


class DataSourceError(AnalyticsError):
    """The record store is unreachable or one of the queries failed."""


class NotFoundError(AnalyticsError):
    """A referenced entity required by the report does not exist."""


__all__ = ["AnalyticsError", "DataSourceError", "NotFoundError", "ValidationError"]
