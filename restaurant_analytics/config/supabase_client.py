"""Supabase configuration shared by the record store."""

from __future__ import annotations

import os

from dotenv import load_dotenv

load_dotenv()

SUPABASE_URL = os.getenv("SUPABASE_URL")
SUPABASE_ANON_KEY = os.getenv("SUPABASE_ANON_KEY")


__all__ = [
    "SUPABASE_URL",
    "SUPABASE_ANON_KEY",
]
