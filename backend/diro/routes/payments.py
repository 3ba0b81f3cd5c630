from __future__ import annotations

import logging
import secrets
from collections import defaultdict
from datetime import date
from decimal import Decimal

from fastapi import APIRouter, Depends, Header, Query, status
from pydantic import BaseModel, Field

from ..config import settings
from ..database import get_db
from ..errors import ForbiddenError, NotFoundError, ValidationError
from ..schemas import Money, Payment, PaymentMethod, PaymentStatus, PaymentType, Role, User, to_money
from ..services import payment_state
from ..utils.authorization import apply_scope, can_view_payment, ensure_campaign_owner, payment_scope, require_roles
from ..utils.pagination import page_window, paginated
from .auth import get_current_user
from .campaigns import load_campaign, owned_campaign_ids


logger = logging.getLogger(__name__)

router = APIRouter()


class DepositRequest(BaseModel):
    campaign_id: str
    amount: Money = Field(gt=0)
    payment_method: PaymentMethod
    metadata: dict = Field(default_factory=dict)


class PayoutRequest(BaseModel):
    creator_id: str
    amount: Money = Field(gt=0)
    payment_method: PaymentMethod
    metadata: dict = Field(default_factory=dict)


class PaymentStatusRequest(BaseModel):
    status: PaymentStatus
    external_transaction_id: str | None = None


class PaymentWebhookRequest(BaseModel):
    payment_id: str
    status: PaymentStatus
    external_transaction_id: str | None = None


def _positive_amount(amount: Decimal) -> Decimal:
    value = to_money(amount)
    if value <= 0:
        raise ValidationError("amount must be at least 0.01", fields=["amount"])
    return value


def _insert_payment(row: dict) -> dict:
    # run the association rules before the row reaches storage
    Payment.model_validate({**row, "id": "new"})
    db = get_db()
    created = db.table("payments").insert(row).execute()
    if not created.data:
        raise RuntimeError("Failed to create payment.")
    return created.data[0]


@router.post("/deposit", status_code=status.HTTP_201_CREATED)
def create_deposit(payload: DepositRequest, current_user: User = Depends(require_roles(Role.BRAND, Role.ADMIN))):
    campaign = load_campaign(payload.campaign_id)
    ensure_campaign_owner(current_user, campaign)

    payment = _insert_payment(
        {
            "type": PaymentType.DEPOSIT.value,
            "campaign_id": campaign.id,
            "creator_id": None,
            "amount": float(_positive_amount(payload.amount)),
            "status": PaymentStatus.PENDING.value,
            "payment_method": payload.payment_method.value,
            "metadata": payload.metadata,
        }
    )
    logger.info(f"Deposit {payment['id']} of {payment['amount']} created for campaign {campaign.id}")
    return payment


@router.post("/payout", status_code=status.HTTP_201_CREATED)
def create_payout(payload: PayoutRequest, current_user: User = Depends(require_roles(Role.ADMIN))):
    amount = _positive_amount(payload.amount)

    db = get_db()
    res = (
        db.table("users")
        .select("*")
        .eq("id", payload.creator_id)
        .eq("role", Role.CREATOR.value)
        .limit(1)
        .execute()
    )
    if not res.data:
        raise NotFoundError("Creator")

    withdrawable = to_money(res.data[0].get("withdrawable_balance"))
    if withdrawable < amount:
        raise ValidationError(
            f"Insufficient withdrawable balance: {withdrawable} available, {amount} requested",
            fields=["amount"],
        )

    payment = _insert_payment(
        {
            "type": PaymentType.PAYOUT.value,
            "campaign_id": None,
            "creator_id": payload.creator_id,
            "amount": float(amount),
            "status": PaymentStatus.PENDING.value,
            "payment_method": payload.payment_method.value,
            "metadata": payload.metadata,
        }
    )
    logger.info(f"Payout {payment['id']} of {payment['amount']} created for creator {payload.creator_id}")
    return payment


@router.get("")
def list_payments(
    payment_type: PaymentType | None = Query(default=None, alias="type"),
    status_filter: PaymentStatus | None = Query(default=None, alias="status"),
    campaign_id: str | None = None,
    creator_id: str | None = None,
    page: int = 1,
    limit: int | None = None,
    current_user: User = Depends(get_current_user),
):
    page, limit, start, end = page_window(page, limit)
    owned = owned_campaign_ids(current_user.id) if current_user.role == Role.BRAND else ()

    db = get_db()
    query = apply_scope(db.table("payments").select("*", count="exact"), payment_scope(current_user, owned))
    if payment_type:
        query = query.eq("type", payment_type.value)
    if status_filter:
        query = query.eq("status", status_filter.value)
    if campaign_id:
        query = query.eq("campaign_id", campaign_id)
    if creator_id:
        query = query.eq("creator_id", creator_id)
    res = query.order("created_at", desc=True).range(start, end).execute()
    return paginated("payments", res.data or [], res.count, page, limit)


@router.get("/audit")
def payment_audit(
    start_date: date | None = None,
    end_date: date | None = None,
    current_user: User = Depends(require_roles(Role.ADMIN)),
):
    if start_date and end_date and end_date < start_date:
        raise ValidationError("end_date must not be earlier than start_date", fields=["end_date"])

    db = get_db()
    query = db.table("payments").select("type, status, amount, created_at")
    if start_date:
        query = query.gte("created_at", start_date.isoformat())
    if end_date:
        query = query.lte("created_at", f"{end_date.isoformat()}T23:59:59.999999+00:00")
    rows = query.execute().data or []

    groups: dict[str, defaultdict[str, dict]] = {
        payment_type.value: defaultdict(lambda: {"count": 0, "total": Decimal("0")}) for payment_type in PaymentType
    }
    volume = Decimal("0")
    for row in rows:
        amount = to_money(row.get("amount"))
        bucket = groups[row["type"]][row["status"]]
        bucket["count"] += 1
        bucket["total"] += amount
        volume += amount

    def _render(grouped: dict) -> list[dict]:
        return [
            {"status": key, "count": value["count"], "total": float(value["total"])}
            for key, value in sorted(grouped.items())
        ]

    return {
        "deposits": _render(groups[PaymentType.DEPOSIT.value]),
        "payouts": _render(groups[PaymentType.PAYOUT.value]),
        "summary": {"total_transactions": len(rows), "total_volume": float(volume)},
    }


@router.post("/webhook")
def payment_webhook(payload: PaymentWebhookRequest, x_webhook_secret: str | None = Header(default=None)):
    configured = settings.payment_webhook_secret
    if not configured or not x_webhook_secret or not secrets.compare_digest(configured, x_webhook_secret):
        logger.warning(f"Rejected payment webhook for {payload.payment_id}")
        raise ForbiddenError("Invalid webhook secret")
    return payment_state.transition(payload.payment_id, payload.status, payload.external_transaction_id)


@router.get("/{payment_id}")
def get_payment(payment_id: str, current_user: User = Depends(get_current_user)):
    db = get_db()
    res = db.table("payments").select("*").eq("id", payment_id).limit(1).execute()
    if not res.data:
        raise NotFoundError("Payment")

    payment = Payment.model_validate(res.data[0])
    owned = owned_campaign_ids(current_user.id) if current_user.role == Role.BRAND else ()
    if not can_view_payment(current_user, payment, owned):
        raise ForbiddenError("You cannot view this payment")
    return res.data[0]


@router.patch("/{payment_id}/status")
def update_payment_status(
    payment_id: str,
    payload: PaymentStatusRequest,
    current_user: User = Depends(require_roles(Role.ADMIN)),
):
    return payment_state.transition(payment_id, payload.status, payload.external_transaction_id)
