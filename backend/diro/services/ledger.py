from __future__ import annotations

import logging
from decimal import Decimal
from typing import Callable

from ..config import settings
from ..database import get_db
from ..errors import ConflictError, NotFoundError, ValidationError
from ..schemas import to_money


logger = logging.getLogger(__name__)

Balances = dict[str, Decimal]


def compare_and_swap(
    table: str,
    row_id: str,
    columns: list[str],
    compute: Callable[[Balances], Balances],
    resource: str,
) -> Balances:
    """Conditionally rewrite numeric columns of one row.

    The update only lands if every column still holds the value that was
    read, so two concurrent writers can never both apply a delta computed
    from the same starting balance. Lost races are re-read and retried a
    bounded number of times.
    """
    db = get_db()
    attempts = max(1, settings.ledger_cas_attempts)
    for attempt in range(1, attempts + 1):
        res = db.table(table).select(",".join(["id", *columns])).eq("id", row_id).limit(1).execute()
        if not res.data:
            raise NotFoundError(resource)

        current = {column: to_money(res.data[0].get(column)) for column in columns}
        updated = compute(dict(current))

        query = db.table(table).update({column: float(value) for column, value in updated.items()}).eq("id", row_id)
        for column in columns:
            query = query.eq(column, float(current[column]))
        if query.execute().data:
            return updated

        logger.warning(f"Lost update race on {table}.{row_id} (attempt {attempt}/{attempts})")

    raise ConflictError(f"{resource} was modified concurrently, please retry")


def debit_withdrawable(user_id: str, amount: Decimal) -> Decimal:
    def _debit(current: Balances) -> Balances:
        balance = current["withdrawable_balance"]
        if balance < amount:
            raise ValidationError(
                f"Insufficient withdrawable balance: {balance} available, {amount} requested",
                fields=["amount"],
            )
        return {"withdrawable_balance": balance - amount}

    return compare_and_swap("users", user_id, ["withdrawable_balance"], _debit, "Creator")["withdrawable_balance"]


def credit_withdrawable(user_id: str, amount: Decimal) -> Decimal:
    return compare_and_swap(
        "users",
        user_id,
        ["withdrawable_balance"],
        lambda current: {"withdrawable_balance": current["withdrawable_balance"] + amount},
        "Creator",
    )["withdrawable_balance"]


def credit_settlement(user_id: str, amount: Decimal) -> Balances:
    """Credit settled earnings to both the lifetime and withdrawable balances."""
    return compare_and_swap(
        "users",
        user_id,
        ["available_balance", "withdrawable_balance"],
        lambda current: {
            "available_balance": current["available_balance"] + amount,
            "withdrawable_balance": current["withdrawable_balance"] + amount,
        },
        "Creator",
    )


def adjust_campaign_deposit(campaign_id: str, delta: Decimal) -> Decimal:
    def _adjust(current: Balances) -> Balances:
        deposit = current["deposit"] + delta
        if deposit < 0:
            raise ValidationError("Campaign deposit cannot become negative", fields=["deposit"])
        return {"deposit": deposit}

    return compare_and_swap("campaigns", campaign_id, ["deposit"], _adjust, "Campaign")["deposit"]


def claim_clip_settlement(clip_id: str, settled: Decimal, earnings: Decimal) -> bool:
    """Mark a clip's earnings as settled unless another run already did."""
    db = get_db()
    res = (
        db.table("clips")
        .update({"settled_earnings": float(earnings)})
        .eq("id", clip_id)
        .eq("settled_earnings", float(settled))
        .execute()
    )
    return bool(res.data)
