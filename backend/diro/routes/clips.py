from __future__ import annotations

import logging
from datetime import datetime, timezone
from decimal import Decimal

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field, field_validator

from ..database import get_db
from ..errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from ..schemas import TIMESTAMP_PATTERN, Campaign, CampaignStatus, Clip, ClipStatus, Role, User
from ..services.earnings import calculate_earnings, is_payable
from ..utils.authorization import apply_scope, can_view_clip, clip_scope, require_roles
from ..utils.pagination import page_window, paginated
from .auth import get_current_user
from .campaigns import owned_campaign_ids


logger = logging.getLogger(__name__)

router = APIRouter()


class ClipSubmitRequest(BaseModel):
    campaign_id: str
    clip_link: str = Field(min_length=1)
    original_video_link: str = Field(min_length=1)
    clip_timestamps: list[str] = Field(default_factory=list)
    edit_description: str = ""

    @field_validator("clip_timestamps")
    @classmethod
    def _timestamps(cls, value: list[str]) -> list[str]:
        for stamp in value:
            if not TIMESTAMP_PATTERN.match(stamp):
                raise ValueError(f"Invalid timestamp {stamp!r}, expected HH:MM:SS")
        return value


class ClipStatusRequest(BaseModel):
    status: ClipStatus


class ClipViewsRequest(BaseModel):
    views: int = Field(ge=0)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def load_clip(clip_id: str) -> Clip:
    db = get_db()
    res = db.table("clips").select("*").eq("id", clip_id).limit(1).execute()
    if not res.data:
        raise NotFoundError("Clip")
    return Clip.model_validate(res.data[0])


def _find_campaign(campaign_id: str) -> Campaign | None:
    db = get_db()
    res = db.table("campaigns").select("*").eq("id", campaign_id).limit(1).execute()
    return Campaign.model_validate(res.data[0]) if res.data else None


@router.post("", status_code=status.HTTP_201_CREATED)
def submit_clip(payload: ClipSubmitRequest, current_user: User = Depends(require_roles(Role.CREATOR))):
    campaign = _find_campaign(payload.campaign_id)
    if campaign is None:
        raise NotFoundError("Campaign")
    if campaign.status != CampaignStatus.LIVE:
        raise ValidationError("Clips can only be submitted to live campaigns", fields=["campaign_id"])

    clip_link = payload.clip_link.strip()
    db = get_db()
    existing = (
        db.table("clips")
        .select("id")
        .eq("campaign_id", campaign.id)
        .eq("clip_link", clip_link)
        .limit(1)
        .execute()
    )
    if existing.data:
        raise ConflictError("This clip has already been submitted to the campaign")

    created = db.table("clips").insert(
        {
            "campaign_id": campaign.id,
            "creator_id": current_user.id,
            "clip_link": clip_link,
            "original_video_link": payload.original_video_link.strip(),
            "clip_timestamps": payload.clip_timestamps,
            "edit_description": payload.edit_description.strip(),
            "views": 0,
            "earnings": 0,
            "settled_earnings": 0,
            "status": ClipStatus.PENDING.value,
        }
    ).execute()
    if not created.data:
        raise RuntimeError("Failed to store clip.")

    clip = created.data[0]
    logger.info(f"Clip {clip['id']} submitted to campaign {campaign.id} by {current_user.id}")
    return clip


@router.get("")
def list_clips(
    campaign_id: str | None = None,
    status_filter: ClipStatus | None = Query(default=None, alias="status"),
    page: int = 1,
    limit: int | None = None,
    current_user: User = Depends(get_current_user),
):
    page, limit, start, end = page_window(page, limit)
    owned = owned_campaign_ids(current_user.id) if current_user.role == Role.BRAND else ()

    db = get_db()
    query = apply_scope(db.table("clips").select("*", count="exact"), clip_scope(current_user, owned))
    if campaign_id:
        query = query.eq("campaign_id", campaign_id)
    if status_filter:
        query = query.eq("status", status_filter.value)
    res = query.order("created_at", desc=True).range(start, end).execute()
    return paginated("clips", res.data or [], res.count, page, limit)


@router.get("/analytics/me")
def my_clip_analytics(current_user: User = Depends(require_roles(Role.CREATOR))):
    db = get_db()
    rows = db.table("clips").select("*").eq("creator_id", current_user.id).execute().data or []
    clips = [Clip.model_validate(row) for row in rows]

    campaigns: dict[str, Campaign | None] = {}
    payable = Decimal("0")
    for clip in clips:
        if clip.campaign_id not in campaigns:
            campaigns[clip.campaign_id] = _find_campaign(clip.campaign_id)
        campaign = campaigns[clip.campaign_id]
        if campaign is not None and is_payable(clip, campaign):
            payable += clip.earnings

    by_status = {clip_status.value: 0 for clip_status in ClipStatus}
    for clip in clips:
        by_status[clip.status.value] += 1

    return {
        "clips": {"total": len(clips), **by_status},
        "total_views": sum(clip.views for clip in clips),
        "total_earnings": float(sum((clip.earnings for clip in clips), Decimal("0"))),
        "payable_earnings": float(payable),
        "settled_earnings": float(sum((clip.settled_earnings for clip in clips), Decimal("0"))),
        "wallet": {key: float(value) for key, value in current_user.wallet.model_dump().items()},
    }


@router.get("/{clip_id}")
def get_clip(clip_id: str, current_user: User = Depends(get_current_user)):
    db = get_db()
    res = db.table("clips").select("*").eq("id", clip_id).limit(1).execute()
    if not res.data:
        raise NotFoundError("Clip")

    clip = Clip.model_validate(res.data[0])
    if not can_view_clip(current_user, clip, _find_campaign(clip.campaign_id)):
        raise ForbiddenError("You cannot view this clip")
    return res.data[0]


@router.patch("/{clip_id}/status")
def update_clip_status(
    clip_id: str,
    payload: ClipStatusRequest,
    current_user: User = Depends(require_roles(Role.ADMIN)),
):
    clip = load_clip(clip_id)
    db = get_db()
    res = (
        db.table("clips")
        .update({"status": payload.status.value, "updated_at": _now()})
        .eq("id", clip.id)
        .execute()
    )
    if not res.data:
        raise NotFoundError("Clip")

    logger.info(f"Clip {clip.id} {clip.status.value} -> {payload.status.value} by {current_user.id}")
    return res.data[0]


@router.put("/{clip_id}/views")
def update_clip_views(
    clip_id: str,
    payload: ClipViewsRequest,
    current_user: User = Depends(require_roles(Role.ADMIN)),
):
    clip = load_clip(clip_id)
    clip.views = payload.views
    earnings = calculate_earnings(clip, _find_campaign(clip.campaign_id))

    db = get_db()
    res = (
        db.table("clips")
        .update({"views": payload.views, "earnings": float(earnings), "updated_at": _now()})
        .eq("id", clip.id)
        .execute()
    )
    if not res.data:
        raise NotFoundError("Clip")
    return res.data[0]


@router.delete("/{clip_id}")
def delete_clip(clip_id: str, current_user: User = Depends(get_current_user)):
    clip = load_clip(clip_id)
    if not current_user.is_admin:
        if clip.creator_id != current_user.id:
            raise ForbiddenError("You do not own this clip")
        if clip.status != ClipStatus.PENDING:
            raise ValidationError("Only clips pending review can be withdrawn", fields=["status"])
    if clip.settled_earnings > 0:
        raise ConflictError("Clip earnings have already been settled")

    db = get_db()
    db.table("clips").delete().eq("id", clip.id).execute()
    logger.info(f"Clip {clip.id} deleted by {current_user.id}")
    return {"status": "deleted", "clip_id": clip.id}
