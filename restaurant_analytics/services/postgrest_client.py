"""Shared utilities for talking to Supabase/PostgREST."""

from __future__ import annotations

import logging
from typing import Any, Dict, NoReturn, Optional

from fastapi import HTTPException
from httpx import HTTPError as HttpxError
from httpx import Timeout
from postgrest import APIError as PostgrestAPIError
from postgrest import SyncPostgrestClient

from restaurant_analytics.config.supabase_client import SUPABASE_ANON_KEY, SUPABASE_URL
from restaurant_analytics.services.errors import DataSourceError

logger = logging.getLogger(__name__)


def extract_bearer_token(header_value: Optional[str]) -> str:
    """Return the Bearer token from an Authorization header."""

    if not header_value:
        raise HTTPException(status_code=401, detail="Authentication required.")
    parts = header_value.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise HTTPException(status_code=401, detail="Invalid Bearer token.")
    token = parts[1].strip()
    if not token:
        raise HTTPException(status_code=401, detail="Missing Bearer token.")
    return token


def create_postgrest_client(
    access_token: str,
    *,
    api_key: Optional[str] = None,
    timeout: Optional[float] = None,
) -> SyncPostgrestClient:
    """Instantiate a PostgREST client authenticated with the provided token.

    ``timeout`` bounds every HTTP call in seconds; the client default applies when omitted.
    """

    resolved_api_key = api_key or SUPABASE_ANON_KEY
    if not SUPABASE_URL or not resolved_api_key:
        raise DataSourceError("Supabase is not configured.")

    headers: Dict[str, str] = {
        "apikey": resolved_api_key,
        "Accept": "application/json",
    }

    client_kwargs: Dict[str, Any] = {"headers": headers}
    if timeout is not None:
        client_kwargs["timeout"] = Timeout(timeout)

    client = SyncPostgrestClient(f"{SUPABASE_URL.rstrip('/')}/rest/v1", **client_kwargs)
    client.auth(access_token)
    return client


def raise_data_source_error(exc: Exception, *, context: str) -> NoReturn:
    """Log a PostgREST/transport failure and re-raise it as a DataSourceError."""

    if isinstance(exc, PostgrestAPIError):
        status_code = postgrest_status(exc)
        detail = exc.message or "Error while querying Supabase."
        logger.error("%s failed (%s): %s", context, status_code, detail)
        raise DataSourceError(f"{context} failed: {detail}") from exc
    if isinstance(exc, HttpxError):
        logger.error("Supabase unreachable during %s: %s", context, exc)
        raise DataSourceError("Supabase is temporarily unreachable.") from exc
    logger.error("%s failed: %s", context, exc)
    raise DataSourceError(f"{context} failed.") from exc


def postgrest_status(exc: PostgrestAPIError) -> int:
    """Best effort extraction of an HTTP status code from the API error."""

    try:
        return int(exc.code) if exc.code else 502
    except (TypeError, ValueError):
        return 502


__all__ = [
    "create_postgrest_client",
    "extract_bearer_token",
    "postgrest_status",
    "raise_data_source_error",
]
