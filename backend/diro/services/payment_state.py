from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from ..database import get_db
from ..errors import ConflictError, NotFoundError, ValidationError
from ..schemas import Payment, PaymentStatus, PaymentType
from . import ledger


logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS: dict[PaymentStatus, frozenset[PaymentStatus]] = {
    PaymentStatus.PENDING: frozenset({PaymentStatus.PROCESSING, PaymentStatus.COMPLETED, PaymentStatus.FAILED}),
    PaymentStatus.PROCESSING: frozenset({PaymentStatus.COMPLETED, PaymentStatus.FAILED}),
    PaymentStatus.COMPLETED: frozenset(),
    PaymentStatus.FAILED: frozenset({PaymentStatus.PENDING}),
}


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def can_transition(current: PaymentStatus, target: PaymentStatus) -> bool:
    return target in ALLOWED_TRANSITIONS[current]


def check_transition(current: PaymentStatus, target: PaymentStatus) -> None:
    if not can_transition(current, target):
        raise ValidationError(f"Cannot transition from {current.value} to {target.value}", fields=["status"])


def load_payment(payment_id: str) -> Payment:
    db = get_db()
    res = db.table("payments").select("*").eq("id", payment_id).limit(1).execute()
    if not res.data:
        raise NotFoundError("Payment")
    return Payment.model_validate(res.data[0])


def _apply_completion(payment: Payment) -> None:
    if payment.type == PaymentType.PAYOUT:
        ledger.debit_withdrawable(payment.creator_id, payment.amount)
    else:
        ledger.adjust_campaign_deposit(payment.campaign_id, payment.amount)


def _revert_completion(payment: Payment) -> None:
    if payment.type == PaymentType.PAYOUT:
        ledger.credit_withdrawable(payment.creator_id, payment.amount)
    else:
        ledger.adjust_campaign_deposit(payment.campaign_id, -payment.amount)


def transition(
    payment_id: str,
    target: PaymentStatus | str,
    external_transaction_id: str | None = None,
) -> dict[str, Any]:
    """Move a payment to ``target`` and commit its financial effect.

    The wallet or campaign effect of a completion is applied before the status
    swap so an insufficient balance leaves the payment untouched. The swap is
    conditional on the status that was read; if another caller moved the
    payment first, the effect is undone and a ConflictError is raised. A
    status write that fails outright also undoes the effect before re-raising.
    """
    try:
        target = PaymentStatus(target)
    except ValueError:
        raise ValidationError(f"Unknown payment status {target!r}", fields=["status"])
    payment = load_payment(payment_id)
    check_transition(payment.status, target)

    completes = target == PaymentStatus.COMPLETED
    if completes:
        _apply_completion(payment)

    changes: dict[str, object] = {"status": target.value, "updated_at": _now()}
    if external_transaction_id:
        changes["external_transaction_id"] = external_transaction_id
    if completes:
        changes["completed_at"] = changes["updated_at"]

    db = get_db()
    try:
        res = (
            db.table("payments")
            .update(changes)
            .eq("id", payment.id)
            .eq("status", payment.status.value)
            .execute()
        )
    except Exception:
        if completes:
            logger.error(f"Status write for payment {payment.id} failed, reverting its completion effect")
            _revert_completion(payment)
        raise
    if not res.data:
        if completes:
            _revert_completion(payment)
        logger.warning(f"Payment {payment.id} changed status while moving {payment.status.value} -> {target.value}")
        raise ConflictError(f"Payment {payment.id} was updated concurrently, please retry")

    logger.info(f"Payment {payment.id} ({payment.type.value}) {payment.status.value} -> {target.value}")
    return res.data[0]
