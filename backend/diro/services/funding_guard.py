from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from ..errors import ValidationError
from ..schemas import AdminSettings
from .earnings import VIEWS_PER_CPM_UNIT, campaign_liability


MIN_TITLE_LENGTH = 5


@dataclass
class CampaignTerms:
    title: str
    description: str
    source_videos: list[str]
    goal_views: int
    cpm: Decimal
    deposit: Decimal
    min_views_for_payout: int


def is_funded(goal_views: int, cpm: Decimal, deposit: Decimal) -> bool:
    # deposit * 1000 >= goal_views * cpm, kept in integer-scaled form to avoid rounding
    return Decimal(deposit) * VIEWS_PER_CPM_UNIT >= Decimal(goal_views) * Decimal(cpm)


def validate_campaign_terms(
    terms: CampaignTerms,
    platform: AdminSettings,
    check_cpm: bool = True,
    check_min_views: bool = True,
) -> None:
    """Raise a ValidationError listing every rule the campaign terms break."""
    problems: list[tuple[str, str]] = []

    if len((terms.title or "").strip()) < MIN_TITLE_LENGTH:
        problems.append(("title", f"title must be at least {MIN_TITLE_LENGTH} characters"))
    if not (terms.description or "").strip():
        problems.append(("description", "description is required"))
    if not [video for video in terms.source_videos or [] if video and video.strip()]:
        problems.append(("source_videos", "at least one source video is required"))
    if terms.goal_views is None or terms.goal_views <= 0:
        problems.append(("goal_views", "goal_views must be a positive integer"))
    if terms.cpm is None or terms.cpm <= 0:
        problems.append(("cpm", "cpm must be greater than 0"))
    elif check_cpm and terms.cpm < platform.min_cpm:
        problems.append(("cpm", f"cpm must be at least the platform minimum of {platform.min_cpm}"))
    if terms.deposit is None or terms.deposit < 0:
        problems.append(("deposit", "deposit cannot be negative"))
    if terms.min_views_for_payout is None or terms.min_views_for_payout < 1:
        problems.append(("min_views_for_payout", "min_views_for_payout must be at least 1"))
    elif check_min_views and terms.min_views_for_payout < platform.min_views_for_payout:
        problems.append(
            (
                "min_views_for_payout",
                f"min_views_for_payout must be at least the platform floor of {platform.min_views_for_payout}",
            )
        )

    failed_fields = {field for field, _ in problems}
    if not failed_fields & {"goal_views", "cpm", "deposit"}:
        if not is_funded(terms.goal_views, terms.cpm, terms.deposit):
            required = campaign_liability(terms.goal_views, terms.cpm)
            problems.append(
                ("deposit", f"deposit must cover the campaign goal cost of {required} ({terms.goal_views} views at {terms.cpm} CPM)")
            )

    if problems:
        raise ValidationError(
            *[message for _, message in problems],
            fields=list(dict.fromkeys(field for field, _ in problems)),
        )
