from __future__ import annotations

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from ..database import get_db
from ..errors import ValidationError
from ..schemas import Role, User
from ..utils.authorization import require_roles
from ..utils.pagination import page_window, paginated
from .auth import get_current_user, load_user


logger = logging.getLogger(__name__)

router = APIRouter()

PUBLIC_COLUMNS = (
    "id, name, email, role, auth_provider, can_create_campaign, is_active, instagram, tiktok, youtube, "
    "available_balance, pending_balance, withdrawable_balance, created_at"
)


class SocialAccounts(BaseModel):
    instagram: str | None = None
    tiktok: str | None = None
    youtube: str | None = None


class ProfileUpdateRequest(BaseModel):
    name: str | None = Field(default=None, min_length=2, max_length=80)
    social_accounts: SocialAccounts | None = None


@router.get("/me")
def read_me(current_user: User = Depends(get_current_user)):
    return current_user.public_dict()


@router.put("/me")
def update_me(payload: ProfileUpdateRequest, current_user: User = Depends(get_current_user)):
    changes: dict[str, object] = {}
    if payload.name is not None:
        changes["name"] = payload.name.strip()
    if payload.social_accounts is not None:
        for network, handle in payload.social_accounts.model_dump(exclude_unset=True).items():
            changes[network] = handle.strip() if handle else None
    if not changes:
        raise ValidationError("No changes supplied")

    changes["updated_at"] = datetime.now(timezone.utc).isoformat()
    db = get_db()
    db.table("users").update(changes).eq("id", current_user.id).execute()
    logger.info(f"User {current_user.id} updated profile: {sorted(changes)}")
    return load_user(current_user.id).public_dict()


@router.get("/me/wallet")
def read_wallet(current_user: User = Depends(get_current_user)):
    return {key: float(value) for key, value in current_user.wallet.model_dump().items()}


@router.get("")
def list_users(
    role: Role | None = None,
    page: int = 1,
    limit: int | None = None,
    current_user: User = Depends(require_roles(Role.ADMIN)),
):
    page, limit, start, end = page_window(page, limit)
    db = get_db()
    query = db.table("users").select(PUBLIC_COLUMNS, count="exact")
    if role:
        query = query.eq("role", role.value)
    res = query.order("created_at", desc=True).range(start, end).execute()
    return paginated("users", res.data or [], res.count, page, limit)
