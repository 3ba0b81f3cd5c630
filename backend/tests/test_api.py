"""
End-to-end API tests against the in-memory storage fake.

Tests cover:
1. Registration, login and token handling
2. Campaign funding, permissions and lifecycle
3. Clip submission and view-based earnings
4. Deposits, payouts and their state transitions
5. Admin settings, dashboard and settlement
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from jose import jwt

from diro.routes import admin as admin_routes
from diro.routes import auth as auth_routes


PASSWORD = "correct-horse-battery"

CAMPAIGN_BODY = {
    "title": "Summer launch clips",
    "description": "Cut highlights from the launch stream",
    "source_videos": ["https://youtube.com/watch?v=launch"],
    "goal_views": 100_000,
    "cpm": 5.0,
    "deposit": 500,
}


def _money(value) -> Decimal:
    return Decimal(str(value))


class TestAuth:
    """Registration, login and bearer tokens."""

    def test_register_returns_token_without_hash(self, client):
        res = client.post(
            "/auth/register",
            json={"name": "Clip Queen", "email": "Queen@Example.com", "password": PASSWORD, "role": "creator"},
        )

        assert res.status_code == 201
        body = res.json()
        assert body["token_type"] == "bearer"
        assert body["user"]["email"] == "queen@example.com"
        assert body["user"]["wallet"] == {
            "available_balance": 0.0,
            "pending_balance": 0.0,
            "withdrawable_balance": 0.0,
        }
        assert "password_hash" not in body["user"]

    def test_duplicate_registration_conflicts(self, client):
        payload = {"name": "Clip Queen", "email": "queen@example.com", "password": PASSWORD, "role": "creator"}
        client.post("/auth/register", json=payload)

        res = client.post("/auth/register", json=payload)

        assert res.status_code == 409
        assert res.json()["error"] == "conflict"

    def test_storage_unique_violation_is_a_conflict(self, client, monkeypatch):
        """Two registrations racing past the lookup hit the unique index."""
        payload = {"name": "Clip Queen", "email": "queen@example.com", "password": PASSWORD, "role": "creator"}
        client.post("/auth/register", json=payload)
        monkeypatch.setattr(auth_routes, "_find_accounts", lambda email, role=None: [])

        res = client.post("/auth/register", json=payload)

        assert res.status_code == 409
        assert res.json()["error"] == "conflict"

    def test_same_email_may_hold_two_roles(self, client):
        base = {"name": "Dual Account", "email": "dual@example.com", "password": PASSWORD}
        assert client.post("/auth/register", json={**base, "role": "creator"}).status_code == 201
        assert client.post("/auth/register", json={**base, "role": "brand"}).status_code == 201

        ambiguous = client.post("/auth/login", json={"email": "dual@example.com", "password": PASSWORD})
        assert ambiguous.status_code == 400
        assert ambiguous.json()["fields"] == ["role"]

        res = client.post("/auth/login", json={"email": "dual@example.com", "password": PASSWORD, "role": "brand"})
        assert res.status_code == 200
        assert res.json()["user"]["role"] == "brand"

    def test_login_with_wrong_password(self, client, make_user):
        user = make_user("creator")

        res = client.post("/auth/login", json={"email": user["email"], "password": "not-the-password"})

        assert res.status_code == 401
        assert res.json()["error"] == "authentication_error"
        assert res.headers["www-authenticate"] == "Bearer"

    def test_disabled_account_cannot_login(self, client, make_user):
        user = make_user("creator", is_active=False)
        res = client.post("/auth/login", json={"email": user["email"], "password": PASSWORD})
        assert res.status_code == 401

    def test_short_password_is_a_validation_error(self, client):
        res = client.post(
            "/auth/register",
            json={"name": "Clip Queen", "email": "queen@example.com", "password": "short", "role": "creator"},
        )

        assert res.status_code == 400
        assert res.json()["error"] == "validation_error"
        assert res.json()["fields"] == ["password"]

    def test_missing_token(self, client):
        res = client.get("/users/me")
        assert res.status_code == 401
        assert res.json()["message"] == "No token provided"

    def test_garbage_token(self, client):
        res = client.get("/users/me", headers={"Authorization": "Bearer not-a-jwt"})
        assert res.status_code == 401
        assert res.json()["message"] == "Invalid token"

    def test_expired_token(self, client, make_user):
        user = make_user("creator")
        expired = int((datetime.now(timezone.utc) - timedelta(minutes=1)).timestamp())
        token = jwt.encode({"sub": user["id"], "role": "creator", "exp": expired}, "test-secret", algorithm="HS256")

        res = client.get("/users/me", headers={"Authorization": f"Bearer {token}"})

        assert res.status_code == 401
        assert res.json()["message"] == "Token expired"


class TestGoogleLogin:
    """Federated sign-in creates or reuses a credential-less account."""

    @pytest.fixture
    def google(self, monkeypatch):
        claims = {"sub": "google-123", "email": "clipper@example.com", "name": "Google Clipper"}
        monkeypatch.setattr(auth_routes.security, "verify_google_credential", lambda credential: claims)
        return claims

    def test_creates_federated_account(self, client, db, google):
        res = client.post("/auth/google", json={"credential": "id-token", "role": "creator"})

        assert res.status_code == 200
        assert res.json()["user"]["auth_provider"] == "google"
        stored = db.rows("users")[0]
        assert stored["external_id"] == "google-123"
        assert stored["password_hash"] is None

    def test_second_login_reuses_account(self, client, db, google):
        client.post("/auth/google", json={"credential": "id-token", "role": "creator"})
        client.post("/auth/google", json={"credential": "id-token", "role": "creator"})
        assert len(db.rows("users")) == 1

    def test_local_account_with_same_email_conflicts(self, client, make_user, google):
        make_user("creator", email="clipper@example.com")
        res = client.post("/auth/google", json={"credential": "id-token", "role": "creator"})
        assert res.status_code == 409


class TestUsers:
    def test_update_profile(self, client, make_user, auth_headers):
        user = make_user("creator")

        res = client.put(
            "/users/me",
            json={"name": "Renamed Clipper", "social_accounts": {"tiktok": " @clipper "}},
            headers=auth_headers(user),
        )

        assert res.status_code == 200
        assert res.json()["name"] == "Renamed Clipper"
        assert res.json()["social_accounts"]["tiktok"] == "@clipper"

    def test_wallet_balances(self, client, make_user, auth_headers):
        creator = make_user("creator", withdrawable_balance=12.5, available_balance=20.0)

        wallet = client.get("/users/me/wallet", headers=auth_headers(creator)).json()

        assert wallet == {"available_balance": 20.0, "pending_balance": 0.0, "withdrawable_balance": 12.5}
        assert client.get("/users/me/wallet").status_code == 401

    def test_admin_lists_users_by_role(self, client, make_user, auth_headers):
        admin = make_user("admin")
        make_user("creator")
        make_user("creator")
        make_user("brand")

        res = client.get("/users", params={"role": "creator"}, headers=auth_headers(admin))

        assert res.status_code == 200
        assert res.json()["pagination"]["total"] == 2
        assert all("password_hash" not in row for row in res.json()["users"])


class TestCampaigns:
    """Funding guard, permissions and lifecycle over HTTP."""

    def test_funded_campaign_is_created_pending(self, client, make_user, auth_headers):
        brand = make_user("brand", can_create_campaign=True)

        res = client.post("/campaigns", json=CAMPAIGN_BODY, headers=auth_headers(brand))

        assert res.status_code == 201
        assert res.json()["status"] == "pending"
        assert res.json()["brand_id"] == brand["id"]
        assert res.json()["min_views_for_payout"] == 1000

    def test_underfunded_campaign_rejected(self, client, make_user, auth_headers):
        brand = make_user("brand", can_create_campaign=True)

        res = client.post("/campaigns", json={**CAMPAIGN_BODY, "deposit": 499}, headers=auth_headers(brand))

        assert res.status_code == 400
        assert res.json()["fields"] == ["deposit"]

    def test_brand_without_permission_is_forbidden(self, client, make_user, auth_headers):
        brand = make_user("brand", can_create_campaign=False)

        res = client.post("/campaigns", json=CAMPAIGN_BODY, headers=auth_headers(brand))

        assert res.status_code == 403
        assert res.json()["error"] == "forbidden"

    def test_creator_cannot_create(self, client, make_user, auth_headers):
        res = client.post("/campaigns", json=CAMPAIGN_BODY, headers=auth_headers(make_user("creator")))
        assert res.status_code == 403

    def test_cpm_below_platform_minimum(self, client, make_user, auth_headers):
        brand = make_user("brand", can_create_campaign=True)
        res = client.post("/campaigns", json={**CAMPAIGN_BODY, "cpm": 0.25}, headers=auth_headers(brand))
        assert res.status_code == 400
        assert "cpm" in res.json()["fields"]

    def test_sub_cent_deposit_is_rejected_not_rounded(self, client, db, make_user, auth_headers):
        brand = make_user("brand", can_create_campaign=True)

        res = client.post("/campaigns", json={**CAMPAIGN_BODY, "deposit": 499.995}, headers=auth_headers(brand))

        assert res.status_code == 400
        assert res.json()["fields"] == ["deposit"]
        assert db.rows("campaigns") == []

    def test_sub_cent_cpm_is_rejected_not_rounded(self, client, db, make_user, auth_headers):
        brand = make_user("brand", can_create_campaign=True)

        res = client.post("/campaigns", json={**CAMPAIGN_BODY, "cpm": 0.495}, headers=auth_headers(brand))

        assert res.status_code == 400
        assert res.json()["fields"] == ["cpm"]
        assert db.rows("campaigns") == []

    def test_admin_must_name_the_owning_brand(self, client, make_user, auth_headers):
        admin = make_user("admin")
        brand = make_user("brand")

        missing = client.post("/campaigns", json=CAMPAIGN_BODY, headers=auth_headers(admin))
        assert missing.status_code == 400
        assert missing.json()["fields"] == ["brand_id"]

        created = client.post("/campaigns", json={**CAMPAIGN_BODY, "brand_id": brand["id"]}, headers=auth_headers(admin))
        assert created.status_code == 201
        assert created.json()["brand_id"] == brand["id"]

    def test_listing_hides_unpublished_and_deposit(self, client, make_campaign, make_user, auth_headers):
        make_campaign(status="live")
        make_campaign(status="pending")

        anonymous = client.get("/campaigns").json()
        assert anonymous["pagination"]["total"] == 1
        assert "deposit" not in anonymous["campaigns"][0]

        creator = client.get("/campaigns", headers=auth_headers(make_user("creator"))).json()
        assert creator["pagination"]["total"] == 1

    def test_brand_sees_own_pending_campaign(self, client, make_campaign, make_user, auth_headers):
        brand = make_user("brand", can_create_campaign=True)
        mine = make_campaign(brand=brand, status="pending")
        make_campaign(status="pending")

        res = client.get("/campaigns", headers=auth_headers(brand)).json()

        assert [row["id"] for row in res["campaigns"]] == [mine["id"]]
        assert res["campaigns"][0]["deposit"] == 500.0

    def test_pending_campaign_is_not_found_for_others(self, client, make_campaign, make_user, auth_headers):
        campaign = make_campaign(status="pending")
        res = client.get(f"/campaigns/{campaign['id']}", headers=auth_headers(make_user("creator")))
        assert res.status_code == 404

    def test_admin_publishes_then_completes(self, client, make_campaign, make_user, auth_headers):
        admin = make_user("admin")
        campaign = make_campaign(status="pending")

        live = client.patch(f"/campaigns/{campaign['id']}/status", json={"status": "live"}, headers=auth_headers(admin))
        assert live.status_code == 200
        assert live.json()["status"] == "live"

        back = client.patch(
            f"/campaigns/{campaign['id']}/status", json={"status": "pending"}, headers=auth_headers(admin)
        )
        assert back.status_code == 400

        done = client.patch(
            f"/campaigns/{campaign['id']}/status", json={"status": "completed"}, headers=auth_headers(admin)
        )
        assert done.json()["status"] == "completed"

    def test_owner_update_keeps_funding(self, client, db, make_campaign, make_user, auth_headers):
        brand = make_user("brand", can_create_campaign=True)
        campaign = make_campaign(brand=brand)

        ok = client.put(f"/campaigns/{campaign['id']}", json={"title": "Autumn launch clips"}, headers=auth_headers(brand))
        assert ok.status_code == 200
        assert ok.json()["title"] == "Autumn launch clips"

        res = client.put(f"/campaigns/{campaign['id']}", json={"goal_views": 200_000}, headers=auth_headers(brand))
        assert res.status_code == 400
        assert res.json()["fields"] == ["deposit"]
        assert db.get("campaigns", campaign["id"])["goal_views"] == 100_000

    def test_other_brand_cannot_update(self, client, make_campaign, make_user, auth_headers):
        campaign = make_campaign()
        other = make_user("brand", can_create_campaign=True)
        res = client.put(f"/campaigns/{campaign['id']}", json={"title": "Hijacked title"}, headers=auth_headers(other))
        assert res.status_code == 403

    def test_delete_with_payments_conflicts(self, client, db, make_campaign, make_user, auth_headers):
        admin = make_user("admin")
        campaign = make_campaign()
        db.insert_rows(
            "payments",
            {"type": "deposit", "campaign_id": campaign["id"], "amount": 10.0, "payment_method": "stripe"},
        )

        res = client.delete(f"/campaigns/{campaign['id']}", headers=auth_headers(admin))

        assert res.status_code == 409
        assert db.get("campaigns", campaign["id"]) is not None

    def test_analytics(self, client, make_campaign, make_clip, make_user, auth_headers):
        brand = make_user("brand", can_create_campaign=True)
        campaign = make_campaign(brand=brand)
        creator = make_user("creator")
        make_clip(campaign, creator, views=5000, earnings=25.0, status="approved")
        make_clip(campaign, creator, views=200, earnings=0, status="pending")

        res = client.get(f"/campaigns/{campaign['id']}/analytics", headers=auth_headers(brand)).json()

        assert res["clips"] == {"total": 2, "pending": 1, "approved": 1, "flagged": 0}
        assert res["total_views"] == 5200
        assert res["payable_earnings"] == 25.0
        assert res["max_liability"] == 500.0


class TestClips:
    """Submission rules and view-driven earnings."""

    def test_submit_to_live_campaign(self, client, make_campaign, make_user, auth_headers):
        campaign = make_campaign()
        creator = make_user("creator")

        res = client.post(
            "/clips",
            json={
                "campaign_id": campaign["id"],
                "clip_link": "https://tiktok.com/@me/video/1",
                "original_video_link": campaign["source_videos"][0],
                "clip_timestamps": ["00:01:30", "00:02:10"],
            },
            headers=auth_headers(creator),
        )

        assert res.status_code == 201
        assert res.json()["status"] == "pending"
        assert res.json()["earnings"] == 0

    def test_duplicate_link_conflicts(self, client, make_campaign, make_user, auth_headers):
        campaign = make_campaign()
        creator = make_user("creator")
        body = {
            "campaign_id": campaign["id"],
            "clip_link": "https://tiktok.com/@me/video/1",
            "original_video_link": campaign["source_videos"][0],
        }
        client.post("/clips", json=body, headers=auth_headers(creator))

        res = client.post("/clips", json=body, headers=auth_headers(creator))

        assert res.status_code == 409

    def test_pending_campaign_rejects_clips(self, client, make_campaign, make_user, auth_headers):
        campaign = make_campaign(status="pending")
        res = client.post(
            "/clips",
            json={"campaign_id": campaign["id"], "clip_link": "x", "original_video_link": "y"},
            headers=auth_headers(make_user("creator")),
        )
        assert res.status_code == 400

    def test_bad_timestamp(self, client, make_campaign, make_user, auth_headers):
        campaign = make_campaign()
        res = client.post(
            "/clips",
            json={
                "campaign_id": campaign["id"],
                "clip_link": "x",
                "original_video_link": "y",
                "clip_timestamps": ["1:30"],
            },
            headers=auth_headers(make_user("creator")),
        )
        assert res.status_code == 400
        assert res.json()["fields"] == ["clip_timestamps"]

    def test_view_update_computes_earnings(self, client, make_campaign, make_clip, make_user, auth_headers):
        admin = make_user("admin")
        clip = make_clip(make_campaign(), make_user("creator"))

        res = client.put(f"/clips/{clip['id']}/views", json={"views": 5000}, headers=auth_headers(admin))
        assert res.status_code == 200
        assert res.json()["earnings"] == 25.0

        below = client.put(f"/clips/{clip['id']}/views", json={"views": 999}, headers=auth_headers(admin))
        assert below.json()["earnings"] == 0.0

    def test_creators_only_see_their_clips(self, client, make_campaign, make_clip, make_user, auth_headers):
        campaign = make_campaign()
        mine, theirs = make_user("creator"), make_user("creator")
        own = make_clip(campaign, mine)
        other = make_clip(campaign, theirs)

        listing = client.get("/clips", headers=auth_headers(mine)).json()
        assert [row["id"] for row in listing["clips"]] == [own["id"]]
        assert client.get(f"/clips/{other['id']}", headers=auth_headers(mine)).status_code == 403

    def test_brand_sees_clips_on_own_campaigns(self, client, make_campaign, make_clip, make_user, auth_headers):
        brand = make_user("brand", can_create_campaign=True)
        creator = make_user("creator")
        own = make_clip(make_campaign(brand=brand), creator)
        make_clip(make_campaign(), creator)

        listing = client.get("/clips", headers=auth_headers(brand)).json()

        assert [row["id"] for row in listing["clips"]] == [own["id"]]

    def test_creator_withdraws_pending_clip(self, client, db, make_campaign, make_clip, make_user, auth_headers):
        creator = make_user("creator")
        clip = make_clip(make_campaign(), creator)

        res = client.delete(f"/clips/{clip['id']}", headers=auth_headers(creator))

        assert res.status_code == 200
        assert db.get("clips", clip["id"]) is None

    def test_my_analytics(self, client, make_campaign, make_clip, make_user, auth_headers):
        creator = make_user("creator")
        campaign = make_campaign()
        make_clip(campaign, creator, views=5000, earnings=25.0, status="approved")
        make_clip(campaign, creator, views=100, earnings=0, status="flagged")

        res = client.get("/clips/analytics/me", headers=auth_headers(creator)).json()

        assert res["clips"]["total"] == 2
        assert res["total_views"] == 5100
        assert res["payable_earnings"] == 25.0


class TestPayments:
    """Deposits and payouts through their lifecycle."""

    def test_payout_completes_once(self, client, db, make_user, auth_headers):
        admin = make_user("admin")
        creator = make_user("creator", withdrawable_balance=25.0)

        created = client.post(
            "/payments/payout",
            json={"creator_id": creator["id"], "amount": 25, "payment_method": "bank"},
            headers=auth_headers(admin),
        )
        assert created.status_code == 201
        payment_id = created.json()["id"]
        assert created.json()["campaign_id"] is None

        done = client.patch(
            f"/payments/{payment_id}/status",
            json={"status": "completed", "external_transaction_id": "bank-42"},
            headers=auth_headers(admin),
        )
        assert done.status_code == 200
        assert _money(db.get("users", creator["id"])["withdrawable_balance"]) == Decimal("0")

        again = client.patch(f"/payments/{payment_id}/status", json={"status": "completed"}, headers=auth_headers(admin))
        assert again.status_code == 400
        assert again.json()["fields"] == ["status"]
        assert _money(db.get("users", creator["id"])["withdrawable_balance"]) == Decimal("0")

    def test_payout_over_balance_rejected(self, client, make_user, auth_headers):
        admin = make_user("admin")
        creator = make_user("creator", withdrawable_balance=5.0)

        res = client.post(
            "/payments/payout",
            json={"creator_id": creator["id"], "amount": 25, "payment_method": "bank"},
            headers=auth_headers(admin),
        )

        assert res.status_code == 400
        assert res.json()["fields"] == ["amount"]

    def test_payout_to_brand_is_not_found(self, client, make_user, auth_headers):
        res = client.post(
            "/payments/payout",
            json={"creator_id": make_user("brand")["id"], "amount": 1, "payment_method": "bank"},
            headers=auth_headers(make_user("admin")),
        )
        assert res.status_code == 404

    def test_sub_cent_payout_is_rejected(self, client, db, make_user, auth_headers):
        creator = make_user("creator", withdrawable_balance=25.0)

        res = client.post(
            "/payments/payout",
            json={"creator_id": creator["id"], "amount": 10.005, "payment_method": "bank"},
            headers=auth_headers(make_user("admin")),
        )

        assert res.status_code == 400
        assert res.json()["fields"] == ["amount"]
        assert db.rows("payments") == []

    def test_deposit_completion_funds_campaign(self, client, db, make_campaign, make_user, auth_headers):
        brand = make_user("brand", can_create_campaign=True)
        admin = make_user("admin")
        campaign = make_campaign(brand=brand)

        created = client.post(
            "/payments/deposit",
            json={"campaign_id": campaign["id"], "amount": 250, "payment_method": "stripe"},
            headers=auth_headers(brand),
        )
        assert created.status_code == 201
        assert created.json()["creator_id"] is None

        client.patch(
            f"/payments/{created.json()['id']}/status", json={"status": "completed"}, headers=auth_headers(admin)
        )

        assert _money(db.get("campaigns", campaign["id"])["deposit"]) == Decimal("750")

    def test_deposit_to_other_brand_campaign_forbidden(self, client, make_campaign, make_user, auth_headers):
        campaign = make_campaign()
        res = client.post(
            "/payments/deposit",
            json={"campaign_id": campaign["id"], "amount": 10, "payment_method": "paypal"},
            headers=auth_headers(make_user("brand", can_create_campaign=True)),
        )
        assert res.status_code == 403

    def test_non_positive_amount(self, client, make_campaign, make_user, auth_headers):
        brand = make_user("brand", can_create_campaign=True)
        campaign = make_campaign(brand=brand)
        res = client.post(
            "/payments/deposit",
            json={"campaign_id": campaign["id"], "amount": 0, "payment_method": "stripe"},
            headers=auth_headers(brand),
        )
        assert res.status_code == 400
        assert res.json()["fields"] == ["amount"]

    def test_creator_sees_only_own_payouts(self, client, db, make_user, auth_headers):
        mine, theirs = make_user("creator"), make_user("creator")
        for creator in (mine, theirs):
            db.insert_rows(
                "payments",
                {"type": "payout", "creator_id": creator["id"], "amount": 5.0, "payment_method": "bank"},
            )

        listing = client.get("/payments", headers=auth_headers(mine)).json()

        assert listing["pagination"]["total"] == 1
        assert listing["payments"][0]["creator_id"] == mine["id"]

    def test_brand_sees_deposits_for_own_campaigns(self, client, db, make_campaign, make_user, auth_headers):
        brand = make_user("brand", can_create_campaign=True)
        own = make_campaign(brand=brand)
        other = make_campaign()
        for campaign in (own, other):
            db.insert_rows(
                "payments",
                {"type": "deposit", "campaign_id": campaign["id"], "amount": 5.0, "payment_method": "stripe"},
            )

        listing = client.get("/payments", headers=auth_headers(brand)).json()

        assert [row["campaign_id"] for row in listing["payments"]] == [own["id"]]

    def test_webhook_requires_secret(self, client, db, make_user):
        creator = make_user("creator", withdrawable_balance=10.0)
        payment = db.insert_rows(
            "payments",
            {"type": "payout", "creator_id": creator["id"], "amount": 10.0, "payment_method": "paypal"},
        )[0]
        body = {"payment_id": payment["id"], "status": "completed", "external_transaction_id": "pp-1"}

        rejected = client.post("/payments/webhook", json=body, headers={"X-Webhook-Secret": "wrong"})
        assert rejected.status_code == 403
        assert db.get("payments", payment["id"])["status"] == "pending"

        accepted = client.post("/payments/webhook", json=body, headers={"X-Webhook-Secret": "hook-secret"})
        assert accepted.status_code == 200
        assert accepted.json()["external_transaction_id"] == "pp-1"
        assert _money(db.get("users", creator["id"])["withdrawable_balance"]) == Decimal("0")

    def test_audit_groups_by_type_and_status(self, client, db, make_campaign, make_user, auth_headers):
        admin = make_user("admin")
        creator = make_user("creator")
        campaign = make_campaign()
        db.insert_rows(
            "payments",
            [
                {"type": "deposit", "campaign_id": campaign["id"], "amount": 100.0, "payment_method": "stripe"},
                {
                    "type": "deposit",
                    "campaign_id": campaign["id"],
                    "amount": 50.0,
                    "payment_method": "stripe",
                    "status": "completed",
                },
                {"type": "payout", "creator_id": creator["id"], "amount": 20.0, "payment_method": "bank"},
            ],
        )

        res = client.get("/payments/audit", params={"start_date": "2026-01-01"}, headers=auth_headers(admin))

        assert res.status_code == 200
        body = res.json()
        assert body["deposits"] == [
            {"status": "completed", "count": 1, "total": 50.0},
            {"status": "pending", "count": 1, "total": 100.0},
        ]
        assert body["payouts"] == [{"status": "pending", "count": 1, "total": 20.0}]
        assert body["summary"] == {"total_transactions": 3, "total_volume": 170.0}

    def test_audit_is_admin_only(self, client, make_user, auth_headers):
        assert client.get("/payments/audit", headers=auth_headers(make_user("brand"))).status_code == 403


class TestAdmin:
    """Platform settings, dashboard, permissions and settlement."""

    def test_settings_update_applies_to_new_campaigns(self, client, make_user, auth_headers):
        admin = make_user("admin")
        brand = make_user("brand", can_create_campaign=True)

        res = client.put("/admin/settings", json={"min_cpm": 6}, headers=auth_headers(admin))
        assert res.status_code == 200
        assert res.json()["min_cpm"] == 6.0

        created = client.post("/campaigns", json=CAMPAIGN_BODY, headers=auth_headers(brand))
        assert created.status_code == 400
        assert "cpm" in created.json()["fields"]

    def test_invalid_settings_rejected(self, client, make_user, auth_headers):
        admin = make_user("admin")
        res = client.put("/admin/settings", json={"platform_commission_percentage": 150}, headers=auth_headers(admin))
        assert res.status_code == 400
        assert client.get("/admin/settings", headers=auth_headers(admin)).json()["platform_commission_percentage"] == 15.0

    def test_settings_are_admin_only(self, client, make_user, auth_headers):
        assert client.get("/admin/settings", headers=auth_headers(make_user("creator"))).status_code == 403

    def test_schedule_change_reschedules_even_with_stale_cache(self, client, db, make_user, auth_headers, monkeypatch):
        admin = make_user("admin")
        calls = []
        monkeypatch.setattr(admin_routes.settlement_engine, "reschedule", calls.append)

        assert client.get("/admin/settings", headers=auth_headers(admin)).json()["payout_schedule"] == "weekly"
        # another instance switched to monthly; this process still caches weekly
        db.rows("admin_settings")[0]["payout_schedule"] = "monthly"

        res = client.put("/admin/settings", json={"payout_schedule": "weekly"}, headers=auth_headers(admin))

        assert res.status_code == 200
        assert calls == ["weekly"]

    def test_unrelated_change_keeps_schedule(self, client, make_user, auth_headers, monkeypatch):
        calls = []
        monkeypatch.setattr(admin_routes.settlement_engine, "reschedule", calls.append)

        client.put("/admin/settings", json={"min_views_for_payout": 500}, headers=auth_headers(make_user("admin")))

        assert calls == []

    def test_grant_campaign_permission(self, client, make_user, auth_headers):
        admin = make_user("admin")
        brand = make_user("brand")

        granted = client.patch(
            f"/admin/brands/{brand['id']}/permission",
            json={"can_create_campaign": True},
            headers=auth_headers(admin),
        )
        assert granted.status_code == 200
        assert client.post("/campaigns", json=CAMPAIGN_BODY, headers=auth_headers(brand)).status_code == 201

    def test_permission_on_creator_is_not_found(self, client, make_user, auth_headers):
        res = client.patch(
            f"/admin/brands/{make_user('creator')['id']}/permission",
            json={"can_create_campaign": True},
            headers=auth_headers(make_user("admin")),
        )
        assert res.status_code == 404

    def test_dashboard_counts(self, client, db, make_campaign, make_user, auth_headers):
        admin = make_user("admin")
        creator = make_user("creator")
        campaign = make_campaign(status="live")
        db.insert_rows(
            "payments",
            {
                "type": "deposit",
                "campaign_id": campaign["id"],
                "amount": 75.0,
                "payment_method": "stripe",
                "status": "completed",
            },
        )
        db.insert_rows(
            "clips",
            {
                "campaign_id": campaign["id"],
                "creator_id": creator["id"],
                "clip_link": "https://tiktok.com/@me/video/9",
                "original_video_link": "https://youtube.com/watch?v=launch",
            },
        )

        res = client.get("/admin/dashboard", headers=auth_headers(admin)).json()

        assert res["users"] == {"total": 3, "creators": 1, "brands": 1}
        assert res["campaigns"]["live"] == 1
        assert res["clips"]["pending"] == 1
        assert res["payments"]["deposits_completed"] == 75.0

    def test_manual_settlement(self, client, db, make_campaign, make_clip, make_user, auth_headers):
        admin = make_user("admin")
        creator = make_user("creator")
        make_clip(make_campaign(), creator, views=5000, earnings=25.0, status="approved")

        res = client.post("/admin/settlement/trigger", headers=auth_headers(admin))

        assert res.status_code == 200
        assert res.json()["net_credited"] == 21.25
        assert _money(db.get("users", creator["id"])["withdrawable_balance"]) == Decimal("21.25")


class TestHealth:
    def test_health(self, client):
        assert client.get("/health").json()["status"] == "ok"
