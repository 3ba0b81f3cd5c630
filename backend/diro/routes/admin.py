from __future__ import annotations

import logging
from decimal import Decimal

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from ..database import get_db
from ..errors import NotFoundError, ValidationError
from ..schemas import (
    CampaignStatus,
    ClipStatus,
    Money,
    PaymentStatus,
    PaymentType,
    PayoutSchedule,
    Role,
    User,
    to_money,
)
from ..services import settlement_engine
from ..services.settings_store import settings_store
from ..utils.authorization import require_roles


logger = logging.getLogger(__name__)

router = APIRouter()


class SettingsUpdateRequest(BaseModel):
    min_cpm: Money | None = None
    min_views_for_payout: int | None = None
    platform_commission_percentage: Decimal | None = None
    payout_schedule: PayoutSchedule | None = None


class BrandPermissionRequest(BaseModel):
    can_create_campaign: bool


def _count(table: str, **filters: str) -> int:
    db = get_db()
    query = db.table(table).select("id", count="exact")
    for column, value in filters.items():
        query = query.eq(column, value)
    return query.execute().count or 0


@router.get("/settings")
def read_settings(current_user: User = Depends(require_roles(Role.ADMIN))):
    return settings_store.refresh().public_dict()


@router.put("/settings")
def update_settings(payload: SettingsUpdateRequest, current_user: User = Depends(require_roles(Role.ADMIN))):
    changes = payload.model_dump(exclude_unset=True, exclude_none=True)
    if not changes:
        raise ValidationError("No changes supplied")

    updated = settings_store.update(changes)
    if "payout_schedule" in changes:
        settlement_engine.reschedule(updated.payout_schedule)
    return updated.public_dict()


@router.get("/dashboard")
def dashboard(current_user: User = Depends(require_roles(Role.ADMIN))):
    db = get_db()
    completed = (
        db.table("payments")
        .select("type, amount")
        .eq("status", PaymentStatus.COMPLETED.value)
        .execute()
        .data
        or []
    )
    revenue = {payment_type.value: Decimal("0") for payment_type in PaymentType}
    for row in completed:
        revenue[row["type"]] += to_money(row.get("amount"))

    return {
        "users": {
            "total": _count("users"),
            "creators": _count("users", role=Role.CREATOR.value),
            "brands": _count("users", role=Role.BRAND.value),
        },
        "campaigns": {
            "total": _count("campaigns"),
            **{status.value: _count("campaigns", status=status.value) for status in CampaignStatus},
        },
        "clips": {
            "total": _count("clips"),
            **{status.value: _count("clips", status=status.value) for status in ClipStatus},
        },
        "payments": {
            "pending": _count("payments", status=PaymentStatus.PENDING.value),
            "deposits_completed": float(revenue[PaymentType.DEPOSIT.value]),
            "payouts_completed": float(revenue[PaymentType.PAYOUT.value]),
        },
    }


@router.patch("/brands/{brand_id}/permission")
def set_brand_permission(
    brand_id: str,
    payload: BrandPermissionRequest,
    current_user: User = Depends(require_roles(Role.ADMIN)),
):
    db = get_db()
    res = (
        db.table("users")
        .update({"can_create_campaign": payload.can_create_campaign})
        .eq("id", brand_id)
        .eq("role", Role.BRAND.value)
        .execute()
    )
    if not res.data:
        raise NotFoundError("Brand")

    logger.info(f"Brand {brand_id} can_create_campaign={payload.can_create_campaign} by {current_user.id}")
    return {"id": brand_id, "can_create_campaign": bool(res.data[0]["can_create_campaign"])}


@router.post("/settlement/trigger")
def trigger_settlement(current_user: User = Depends(require_roles(Role.ADMIN))):
    logger.info(f"Manual settlement run requested by {current_user.id}")
    return settlement_engine.settle_earnings()
