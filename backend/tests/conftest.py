from __future__ import annotations

from decimal import Decimal
from typing import Any, Callable

import pytest
from fastapi.testclient import TestClient

from diro import database
from diro.config import settings
from diro.routes.auth import create_access_token
from diro.schemas import User
from diro.services.settings_store import settings_store
from diro.utils.security import hash_password
from fake_supabase import FakeSupabase


PASSWORD = "correct-horse-battery"


@pytest.fixture
def db(monkeypatch) -> FakeSupabase:
    fake = FakeSupabase()
    monkeypatch.setattr(database, "_build_client", lambda: fake)
    monkeypatch.setattr(settings, "jwt_secret", "test-secret")
    monkeypatch.setattr(settings, "bcrypt_rounds", 4)
    monkeypatch.setattr(settings, "scheduler_enabled", False)
    monkeypatch.setattr(settings, "payment_webhook_secret", "hook-secret")
    monkeypatch.setattr(settings, "default_min_cpm", Decimal("0.50"))
    monkeypatch.setattr(settings, "default_min_views_for_payout", 1000)
    monkeypatch.setattr(settings, "default_commission_percentage", Decimal("15"))
    settings_store.invalidate()
    yield fake
    settings_store.invalidate()


@pytest.fixture
def client(db) -> TestClient:
    from diro.main import app

    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def make_user(db) -> Callable[..., dict[str, Any]]:
    counter = iter(range(1, 10_000))

    def _make(role: str = "creator", **fields: Any) -> dict[str, Any]:
        row = {
            "name": f"{role.title()} {next(counter)}",
            "role": role,
            "auth_provider": "local",
            "password_hash": hash_password(PASSWORD),
            **fields,
        }
        row.setdefault("email", f"{row['name'].replace(' ', '.').lower()}@example.com")
        return db.insert_rows("users", row)[0]

    return _make


@pytest.fixture
def auth_headers() -> Callable[[dict[str, Any]], dict[str, str]]:
    def _headers(user_row: dict[str, Any]) -> dict[str, str]:
        token = create_access_token(User.from_row(user_row))
        return {"Authorization": f"Bearer {token}"}

    return _headers


@pytest.fixture
def make_campaign(db, make_user) -> Callable[..., dict[str, Any]]:
    def _make(brand: dict[str, Any] | None = None, **fields: Any) -> dict[str, Any]:
        brand = brand or make_user("brand", can_create_campaign=True)
        row = {
            "brand_id": brand["id"],
            "title": "Summer launch clips",
            "description": "Cut highlights from the launch stream",
            "source_videos": ["https://youtube.com/watch?v=launch"],
            "goal_views": 100_000,
            "cpm": 5.0,
            "deposit": 500.0,
            "min_views_for_payout": 1000,
            "status": "live",
            **fields,
        }
        return db.insert_rows("campaigns", row)[0]

    return _make


@pytest.fixture
def make_clip(db) -> Callable[..., dict[str, Any]]:
    counter = iter(range(1, 10_000))

    def _make(campaign: dict[str, Any], creator: dict[str, Any], **fields: Any) -> dict[str, Any]:
        row = {
            "campaign_id": campaign["id"],
            "creator_id": creator["id"],
            "clip_link": f"https://tiktok.com/@clipper/video/{next(counter)}",
            "original_video_link": campaign["source_videos"][0],
            **fields,
        }
        return db.insert_rows("clips", row)[0]

    return _make
