from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal

from ..errors import NotFoundError
from ..schemas import CENT, Campaign, Clip, ClipStatus


VIEWS_PER_CPM_UNIT = Decimal(1000)


def calculate_earnings(clip: Clip, campaign: Campaign | None) -> Decimal:
    """Earnings a clip has accrued against its campaign's CPM.

    Always recomputed from the absolute view count, so repeated updates with
    the same value produce the same result. Clips below the campaign's payout
    threshold earn nothing.
    """
    if campaign is None or campaign.id != clip.campaign_id:
        raise NotFoundError("Campaign")

    if clip.views < campaign.min_views_for_payout:
        return Decimal("0.00")

    gross = Decimal(clip.views) / VIEWS_PER_CPM_UNIT * campaign.cpm
    return gross.quantize(CENT, rounding=ROUND_HALF_UP)


def is_payable(clip: Clip, campaign: Campaign) -> bool:
    return clip.status == ClipStatus.APPROVED and clip.views >= campaign.min_views_for_payout


def campaign_liability(goal_views: int, cpm: Decimal) -> Decimal:
    """Maximum payout owed if the campaign reaches its view goal."""
    return (Decimal(goal_views) / VIEWS_PER_CPM_UNIT * Decimal(cpm)).quantize(CENT, rounding=ROUND_HALF_UP)
