"""Role and ownership checks applied before every mutation.

Listing endpoints never filter rows ad hoc: each entity has a scope builder
that turns the caller into a storage-independent ``RowScope``, and
``apply_scope`` is the only place that scope becomes PostgREST filters.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Iterable

from fastapi import Depends

from ..errors import ForbiddenError
from ..routes.auth import get_current_user
from ..schemas import Campaign, CampaignStatus, Clip, Payment, PaymentType, Role, User


def require_role(user: User, *roles: Role) -> None:
    if user.role not in roles:
        raise ForbiddenError("Insufficient permissions")


def require_roles(*roles: Role) -> Callable[..., User]:
    def _dependency(current_user: User = Depends(get_current_user)) -> User:
        require_role(current_user, *roles)
        return current_user

    return _dependency


def ensure_can_create_campaign(user: User) -> None:
    require_role(user, Role.BRAND, Role.ADMIN)
    if user.role == Role.BRAND and not user.can_create_campaign:
        raise ForbiddenError("Your account is not yet permitted to create campaigns")


def owns_campaign(user: User | None, campaign: Campaign) -> bool:
    return user is not None and (user.is_admin or campaign.brand_id == user.id)


def ensure_campaign_owner(user: User, campaign: Campaign) -> None:
    if not owns_campaign(user, campaign):
        raise ForbiddenError("You do not own this campaign")


def can_view_campaign(user: User | None, campaign: Campaign) -> bool:
    return campaign.status == CampaignStatus.LIVE or owns_campaign(user, campaign)


def can_view_clip(user: User, clip: Clip, campaign: Campaign | None) -> bool:
    if user.is_admin or clip.creator_id == user.id:
        return True
    return user.role == Role.BRAND and campaign is not None and campaign.brand_id == user.id


def can_view_payment(user: User, payment: Payment, owned_campaign_ids: Iterable[str] = ()) -> bool:
    if user.is_admin:
        return True
    if payment.creator_id and payment.creator_id == user.id:
        return True
    if user.role == Role.BRAND and payment.type == PaymentType.DEPOSIT:
        return payment.campaign_id in set(owned_campaign_ids)
    return False


HIDDEN_CAMPAIGN_FIELDS = ("deposit",)


def campaign_view(user: User | None, row: dict[str, Any]) -> dict[str, Any]:
    """Strip funding details from campaigns the caller does not own."""
    if user is not None and (user.is_admin or row.get("brand_id") == user.id):
        return row
    return {key: value for key, value in row.items() if key not in HIDDEN_CAMPAIGN_FIELDS}


@dataclass(frozen=True)
class Condition:
    column: str
    op: str
    value: Any


@dataclass(frozen=True)
class RowScope:
    """Rows a caller may see: unrestricted, or matching ANY of ``conditions``."""

    unrestricted: bool = False
    conditions: tuple[Condition, ...] = field(default_factory=tuple)

    @classmethod
    def everything(cls) -> "RowScope":
        return cls(unrestricted=True)

    @classmethod
    def any_of(cls, *conditions: Condition) -> "RowScope":
        # an empty IN list can never match, so it is dropped from the OR
        return cls(conditions=tuple(c for c in conditions if not (c.op == "in" and not c.value)))

    def matches(self, row: dict[str, Any]) -> bool:
        if self.unrestricted:
            return True
        for condition in self.conditions:
            value = row.get(condition.column)
            if condition.op == "eq" and value == condition.value:
                return True
            if condition.op == "in" and value in condition.value:
                return True
        return False


def campaign_scope(user: User | None) -> RowScope:
    live = Condition("status", "eq", CampaignStatus.LIVE.value)
    if user is None or user.role == Role.CREATOR:
        return RowScope.any_of(live)
    if user.is_admin:
        return RowScope.everything()
    return RowScope.any_of(Condition("brand_id", "eq", user.id), live)


def clip_scope(user: User, owned_campaign_ids: Iterable[str] = ()) -> RowScope:
    if user.is_admin:
        return RowScope.everything()
    if user.role == Role.BRAND:
        return RowScope.any_of(Condition("campaign_id", "in", tuple(owned_campaign_ids)))
    return RowScope.any_of(Condition("creator_id", "eq", user.id))


def payment_scope(user: User, owned_campaign_ids: Iterable[str] = ()) -> RowScope:
    if user.is_admin:
        return RowScope.everything()
    if user.role == Role.BRAND:
        return RowScope.any_of(
            Condition("campaign_id", "in", tuple(owned_campaign_ids)),
            Condition("creator_id", "eq", user.id),
        )
    return RowScope.any_of(Condition("creator_id", "eq", user.id))


def _format_condition(condition: Condition) -> str:
    if condition.op == "in":
        return f"{condition.column}.in.({','.join(str(value) for value in condition.value)})"
    return f"{condition.column}.{condition.op}.{condition.value}"


def to_postgrest_filter(scope: RowScope) -> str | None:
    """Render a scope as a PostgREST ``or`` expression (None when unrestricted)."""
    if scope.unrestricted:
        return None
    return ",".join(_format_condition(condition) for condition in scope.conditions)


def apply_scope(query, scope: RowScope):
    if scope.unrestricted:
        return query
    if not scope.conditions:
        return query.in_("id", [])
    if len(scope.conditions) == 1:
        condition = scope.conditions[0]
        if condition.op == "in":
            return query.in_(condition.column, list(condition.value))
        return query.eq(condition.column, condition.value)
    return query.or_(to_postgrest_filter(scope))
