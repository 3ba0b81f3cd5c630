from __future__ import annotations

import logging
import threading
import time
from datetime import datetime, timezone
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from ..config import settings
from ..database import get_db
from ..errors import ValidationError, describe_validation_errors
from ..schemas import AdminSettings


logger = logging.getLogger(__name__)

TABLE = "admin_settings"
SINGLETON_KEY = "global"
EDITABLE_FIELDS = ("min_cpm", "min_views_for_payout", "platform_commission_percentage", "payout_schedule")


def _defaults() -> dict[str, Any]:
    return {
        "singleton_key": SINGLETON_KEY,
        "min_cpm": float(settings.default_min_cpm),
        "min_views_for_payout": settings.default_min_views_for_payout,
        "platform_commission_percentage": float(settings.default_commission_percentage),
        "payout_schedule": settings.default_payout_schedule,
    }


class PlatformSettingsStore:
    """Process-wide view of the single admin settings row.

    The row is keyed by a fixed sentinel under a unique constraint and is
    created with an upsert that ignores duplicates, so concurrent first
    readers converge on one row. Reads are served from a short-lived cache;
    ``refresh`` forces a re-read.
    """

    def __init__(self, refresh_seconds: int | None = None) -> None:
        self._refresh_seconds = refresh_seconds
        self._cached: AdminSettings | None = None
        self._loaded_at = 0.0
        self._lock = threading.Lock()

    @property
    def refresh_seconds(self) -> int:
        if self._refresh_seconds is not None:
            return self._refresh_seconds
        return settings.settings_refresh_seconds

    def _read_row(self) -> dict[str, Any] | None:
        db = get_db()
        res = db.table(TABLE).select("*").eq("singleton_key", SINGLETON_KEY).limit(1).execute()
        return res.data[0] if res.data else None

    def _ensure_row(self) -> dict[str, Any]:
        row = self._read_row()
        if row:
            return row

        db = get_db()
        db.table(TABLE).upsert(_defaults(), on_conflict="singleton_key", ignore_duplicates=True).execute()
        row = self._read_row()
        if not row:
            raise RuntimeError("Admin settings row could not be created.")
        logger.info("Created default admin settings")
        return row

    def refresh(self) -> AdminSettings:
        loaded = AdminSettings.model_validate(self._ensure_row())
        with self._lock:
            self._cached = loaded
            self._loaded_at = time.monotonic()
        return loaded

    def load(self) -> AdminSettings:
        return self.refresh()

    def current(self) -> AdminSettings:
        with self._lock:
            cached = self._cached
            fresh = cached is not None and (time.monotonic() - self._loaded_at) < self.refresh_seconds
        if fresh:
            return cached
        return self.refresh()

    def invalidate(self) -> None:
        with self._lock:
            self._cached = None
            self._loaded_at = 0.0

    def update(self, changes: dict[str, Any]) -> AdminSettings:
        unknown = sorted(set(changes) - set(EDITABLE_FIELDS))
        if unknown:
            raise ValidationError(*[f"{field} is not an editable setting" for field in unknown], fields=unknown)

        existing = AdminSettings.model_validate(self._ensure_row())
        try:
            merged = AdminSettings.model_validate({**existing.model_dump(), **changes})
        except PydanticValidationError as exc:
            messages, fields = describe_validation_errors(exc.errors())
            raise ValidationError(*messages, fields=fields) from exc

        payload = {
            "min_cpm": float(merged.min_cpm),
            "min_views_for_payout": merged.min_views_for_payout,
            "platform_commission_percentage": float(merged.platform_commission_percentage),
            "payout_schedule": merged.payout_schedule.value,
            "updated_at": datetime.now(timezone.utc).isoformat(),
        }
        db = get_db()
        db.table(TABLE).update(payload).eq("singleton_key", SINGLETON_KEY).execute()
        logger.info(f"Admin settings updated: {sorted(changes)}")
        return self.refresh()


settings_store = PlatformSettingsStore()
