from __future__ import annotations

import logging
from datetime import datetime, timezone
from decimal import Decimal

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field

from ..database import get_db
from ..errors import ConflictError, NotFoundError, ValidationError
from ..schemas import Campaign, CampaignStatus, Clip, ClipStatus, Money, Role, User, to_money
from ..services.earnings import campaign_liability, is_payable
from ..services.funding_guard import CampaignTerms, validate_campaign_terms
from ..services.settings_store import settings_store
from ..utils.authorization import (
    apply_scope,
    campaign_scope,
    campaign_view,
    can_view_campaign,
    ensure_campaign_owner,
    ensure_can_create_campaign,
    require_roles,
)
from ..utils.pagination import page_window, paginated
from .auth import get_current_user, get_optional_user


logger = logging.getLogger(__name__)

router = APIRouter()

CAMPAIGN_TRANSITIONS: dict[CampaignStatus, frozenset[CampaignStatus]] = {
    CampaignStatus.PENDING: frozenset({CampaignStatus.LIVE, CampaignStatus.REJECTED}),
    CampaignStatus.LIVE: frozenset({CampaignStatus.COMPLETED}),
    CampaignStatus.COMPLETED: frozenset(),
    CampaignStatus.REJECTED: frozenset(),
}
LOCKED_STATUSES = (CampaignStatus.COMPLETED, CampaignStatus.REJECTED)


class CampaignCreateRequest(BaseModel):
    title: str
    description: str
    source_videos: list[str]
    goal_views: int
    cpm: Money
    deposit: Money = Decimal("0")
    min_views_for_payout: int | None = None
    brand_id: str | None = Field(default=None, description="Owning brand, admins only")


class CampaignUpdateRequest(BaseModel):
    title: str | None = None
    description: str | None = None
    source_videos: list[str] | None = None
    goal_views: int | None = None
    cpm: Money | None = None
    deposit: Money | None = None
    min_views_for_payout: int | None = None


class CampaignStatusRequest(BaseModel):
    status: CampaignStatus


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def load_campaign(campaign_id: str) -> Campaign:
    db = get_db()
    res = db.table("campaigns").select("*").eq("id", campaign_id).limit(1).execute()
    if not res.data:
        raise NotFoundError("Campaign")
    return Campaign.model_validate(res.data[0])


def owned_campaign_ids(brand_id: str) -> list[str]:
    db = get_db()
    rows = db.table("campaigns").select("id").eq("brand_id", brand_id).execute().data or []
    return [row["id"] for row in rows]


def _terms_row(terms: CampaignTerms) -> dict:
    return {
        "title": terms.title.strip(),
        "description": terms.description.strip(),
        "source_videos": [video.strip() for video in terms.source_videos if video and video.strip()],
        "goal_views": terms.goal_views,
        "cpm": float(terms.cpm),
        "deposit": float(terms.deposit),
        "min_views_for_payout": terms.min_views_for_payout,
    }


def _resolve_brand(current_user: User, requested_brand_id: str | None) -> str:
    if not current_user.is_admin:
        return current_user.id
    if not requested_brand_id:
        raise ValidationError("brand_id is required when an admin creates a campaign", fields=["brand_id"])

    db = get_db()
    res = db.table("users").select("id, role").eq("id", requested_brand_id).limit(1).execute()
    if not res.data or res.data[0].get("role") != Role.BRAND.value:
        raise NotFoundError("Brand")
    return requested_brand_id


@router.get("")
def list_campaigns(
    status_filter: CampaignStatus | None = Query(default=None, alias="status"),
    brand_id: str | None = None,
    page: int = 1,
    limit: int | None = None,
    current_user: User | None = Depends(get_optional_user),
):
    page, limit, start, end = page_window(page, limit)
    db = get_db()
    query = db.table("campaigns").select("*", count="exact")
    query = apply_scope(query, campaign_scope(current_user))
    if status_filter:
        query = query.eq("status", status_filter.value)
    if brand_id:
        query = query.eq("brand_id", brand_id)
    res = query.order("created_at", desc=True).range(start, end).execute()

    campaigns = [campaign_view(current_user, row) for row in res.data or []]
    return paginated("campaigns", campaigns, res.count, page, limit)


@router.post("", status_code=status.HTTP_201_CREATED)
def create_campaign(payload: CampaignCreateRequest, current_user: User = Depends(get_current_user)):
    ensure_can_create_campaign(current_user)
    brand_id = _resolve_brand(current_user, payload.brand_id)

    # minimums are checked against freshly read settings, never the cache
    platform = settings_store.refresh()
    terms = CampaignTerms(
        title=payload.title,
        description=payload.description,
        source_videos=payload.source_videos,
        goal_views=payload.goal_views,
        cpm=to_money(payload.cpm),
        deposit=to_money(payload.deposit),
        min_views_for_payout=(
            payload.min_views_for_payout
            if payload.min_views_for_payout is not None
            else platform.min_views_for_payout
        ),
    )
    validate_campaign_terms(terms, platform)

    db = get_db()
    created = db.table("campaigns").insert(
        {**_terms_row(terms), "brand_id": brand_id, "status": CampaignStatus.PENDING.value}
    ).execute()
    if not created.data:
        raise RuntimeError("Failed to create campaign.")

    campaign = created.data[0]
    logger.info(f"Campaign {campaign['id']} created for brand {brand_id}")
    return campaign


@router.get("/{campaign_id}")
def get_campaign(campaign_id: str, current_user: User | None = Depends(get_optional_user)):
    db = get_db()
    res = db.table("campaigns").select("*").eq("id", campaign_id).limit(1).execute()
    if not res.data or not can_view_campaign(current_user, Campaign.model_validate(res.data[0])):
        raise NotFoundError("Campaign")
    return campaign_view(current_user, res.data[0])


@router.put("/{campaign_id}")
def update_campaign(
    campaign_id: str,
    payload: CampaignUpdateRequest,
    current_user: User = Depends(require_roles(Role.BRAND, Role.ADMIN)),
):
    campaign = load_campaign(campaign_id)
    ensure_campaign_owner(current_user, campaign)
    if campaign.status in LOCKED_STATUSES:
        raise ValidationError(f"Cannot edit a {campaign.status.value} campaign", fields=["status"])

    changes = payload.model_dump(exclude_unset=True, exclude_none=True)
    if not changes:
        raise ValidationError("No changes supplied")

    terms = CampaignTerms(
        title=changes.get("title", campaign.title),
        description=changes.get("description", campaign.description),
        source_videos=changes.get("source_videos", campaign.source_videos),
        goal_views=changes.get("goal_views", campaign.goal_views),
        cpm=to_money(changes.get("cpm", campaign.cpm)),
        deposit=to_money(changes.get("deposit", campaign.deposit)),
        min_views_for_payout=changes.get("min_views_for_payout", campaign.min_views_for_payout),
    )
    cpm_changed = terms.cpm != campaign.cpm
    threshold_changed = terms.min_views_for_payout != campaign.min_views_for_payout
    platform = settings_store.refresh() if cpm_changed or threshold_changed else settings_store.current()
    validate_campaign_terms(terms, platform, check_cpm=cpm_changed, check_min_views=threshold_changed)

    # commit only against the deposit the guard was evaluated with
    db = get_db()
    res = (
        db.table("campaigns")
        .update({**_terms_row(terms), "updated_at": _now()})
        .eq("id", campaign.id)
        .eq("deposit", float(campaign.deposit))
        .eq("status", campaign.status.value)
        .execute()
    )
    if not res.data:
        raise ConflictError("Campaign was modified concurrently, please retry")

    logger.info(f"Campaign {campaign.id} updated: {sorted(changes)}")
    return res.data[0]


@router.patch("/{campaign_id}/status")
def update_campaign_status(
    campaign_id: str,
    payload: CampaignStatusRequest,
    current_user: User = Depends(require_roles(Role.ADMIN)),
):
    campaign = load_campaign(campaign_id)
    if payload.status not in CAMPAIGN_TRANSITIONS[campaign.status]:
        raise ValidationError(
            f"Cannot transition campaign from {campaign.status.value} to {payload.status.value}",
            fields=["status"],
        )

    db = get_db()
    res = (
        db.table("campaigns")
        .update({"status": payload.status.value, "updated_at": _now()})
        .eq("id", campaign.id)
        .eq("status", campaign.status.value)
        .execute()
    )
    if not res.data:
        raise ConflictError("Campaign status changed concurrently, please retry")

    logger.info(f"Campaign {campaign.id} {campaign.status.value} -> {payload.status.value} by {current_user.id}")
    return res.data[0]


@router.delete("/{campaign_id}")
def delete_campaign(campaign_id: str, current_user: User = Depends(require_roles(Role.ADMIN))):
    campaign = load_campaign(campaign_id)

    db = get_db()
    payments = db.table("payments").select("id").eq("campaign_id", campaign.id).limit(1).execute()
    if payments.data:
        raise ConflictError("Campaign has payments and cannot be deleted")

    db.table("clips").delete().eq("campaign_id", campaign.id).execute()
    db.table("campaigns").delete().eq("id", campaign.id).execute()
    logger.info(f"Campaign {campaign.id} deleted by {current_user.id}")
    return {"status": "deleted", "campaign_id": campaign.id}


@router.get("/{campaign_id}/analytics")
def campaign_analytics(
    campaign_id: str,
    current_user: User = Depends(require_roles(Role.BRAND, Role.ADMIN)),
):
    campaign = load_campaign(campaign_id)
    ensure_campaign_owner(current_user, campaign)

    db = get_db()
    rows = db.table("clips").select("*").eq("campaign_id", campaign.id).execute().data or []
    clips = [Clip.model_validate(row) for row in rows]

    by_status = {clip_status.value: 0 for clip_status in ClipStatus}
    for clip in clips:
        by_status[clip.status.value] += 1

    total_views = sum(clip.views for clip in clips)
    payable_earnings = sum((clip.earnings for clip in clips if is_payable(clip, campaign)), Decimal("0"))
    liability = campaign_liability(campaign.goal_views, campaign.cpm)

    return {
        "campaign_id": campaign.id,
        "status": campaign.status.value,
        "clips": {"total": len(clips), **by_status},
        "total_views": total_views,
        "goal_views": campaign.goal_views,
        "goal_progress": round(total_views / campaign.goal_views, 4) if campaign.goal_views else 0.0,
        "payable_earnings": float(payable_earnings),
        "max_liability": float(liability),
        "deposit": float(campaign.deposit),
        "remaining_deposit": float(campaign.deposit - payable_earnings),
    }
