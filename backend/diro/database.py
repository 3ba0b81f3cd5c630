from __future__ import annotations

from functools import lru_cache

from postgrest.exceptions import APIError
from supabase import Client, create_client

from .config import settings
from .errors import AppError, ConflictError, ValidationError


UNIQUE_VIOLATION = "23505"
CHECK_VIOLATION = "23514"


@lru_cache
def _build_client() -> Client:
    if not settings.supabase_url or not settings.supabase_key:
        raise RuntimeError("SUPABASE_URL and SUPABASE_KEY must be configured.")
    return create_client(settings.supabase_url, settings.supabase_key)


def get_db() -> Client:
    return _build_client()


def translate_api_error(exc: APIError) -> AppError | None:
    """Map a PostgREST constraint error onto the application error taxonomy.

    Returns None for anything that is not a client-fixable constraint
    violation; callers treat those as internal failures.
    """
    if exc.code == UNIQUE_VIOLATION:
        return ConflictError(exc.details or exc.message or "Resource already exists")
    if exc.code == CHECK_VIOLATION:
        return ValidationError(exc.message or "Constraint violated")
    return None
