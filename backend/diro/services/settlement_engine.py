from __future__ import annotations

import logging
from collections import defaultdict
from decimal import ROUND_HALF_UP, Decimal

from apscheduler.schedulers.background import BackgroundScheduler

from ..config import settings
from ..database import get_db
from ..schemas import CENT, Campaign, Clip, ClipStatus, PayoutSchedule, to_money
from . import ledger
from .earnings import is_payable
from .settings_store import settings_store


logger = logging.getLogger(__name__)

JOB_ID = "earnings-settlement"

_scheduler: BackgroundScheduler | None = None


def net_of_commission(gross: Decimal, commission_percentage: Decimal) -> Decimal:
    share = (Decimal(100) - Decimal(commission_percentage)) / Decimal(100)
    return (gross * share).quantize(CENT, rounding=ROUND_HALF_UP)


def _refresh_pending_balances(db, clips: list[dict], creator_ids: set[str]) -> None:
    pending: defaultdict[str, Decimal] = defaultdict(Decimal)
    for row in clips:
        if row.get("status") == ClipStatus.PENDING.value:
            pending[row["creator_id"]] += to_money(row.get("earnings"))

    for creator_id in creator_ids:
        db.table("users").update({"pending_balance": float(pending[creator_id])}).eq("id", creator_id).execute()


def settle_earnings() -> dict[str, int | float]:
    """Credit approved clip earnings that have not been settled yet.

    Each clip's unsettled delta is claimed with a conditional update before
    the creator is credited, so overlapping runs cannot pay the same earnings
    twice.
    """
    platform = settings_store.refresh()
    db = get_db()
    clips = db.table("clips").select("*").in_("status", [ClipStatus.APPROVED.value, ClipStatus.PENDING.value]).execute().data or []

    report = {
        "clips_processed": 0,
        "clips_settled": 0,
        "creators_credited": 0,
        "gross_settled": Decimal("0"),
        "commission_retained": Decimal("0"),
        "net_credited": Decimal("0"),
    }
    campaigns: dict[str, Campaign | None] = {}
    credited: set[str] = set()

    for row in clips:
        if row.get("status") != ClipStatus.APPROVED.value:
            continue
        report["clips_processed"] += 1
        try:
            clip = Clip.model_validate(row)
            if clip.campaign_id not in campaigns:
                res = db.table("campaigns").select("*").eq("id", clip.campaign_id).limit(1).execute()
                campaigns[clip.campaign_id] = Campaign.model_validate(res.data[0]) if res.data else None
            campaign = campaigns[clip.campaign_id]
            if campaign is None or not is_payable(clip, campaign):
                continue

            gross = clip.earnings - clip.settled_earnings
            if gross <= 0:
                continue
            if not ledger.claim_clip_settlement(clip.id, clip.settled_earnings, clip.earnings):
                logger.warning(f"Clip {clip.id} was settled by another run")
                continue

            net = net_of_commission(gross, platform.platform_commission_percentage)
            if net > 0:
                try:
                    ledger.credit_settlement(clip.creator_id, net)
                except Exception:
                    # release the claim so the next run retries this clip
                    ledger.claim_clip_settlement(clip.id, clip.earnings, clip.settled_earnings)
                    raise

            credited.add(clip.creator_id)
            report["clips_settled"] += 1
            report["gross_settled"] += gross
            report["net_credited"] += net
            report["commission_retained"] += gross - net
        except Exception:
            logger.exception(f"Failed to settle clip {row.get('id')}")
            continue

    creator_ids = {row["creator_id"] for row in clips}
    # creators whose clips were all flagged or deleted still carry an old snapshot
    stale = db.table("users").select("id").neq("pending_balance", 0).execute().data or []
    creator_ids.update(row["id"] for row in stale)
    _refresh_pending_balances(db, clips, creator_ids)

    report["creators_credited"] = len(credited)
    logger.info(
        f"Settlement run: {report['clips_settled']} clips, {report['creators_credited']} creators, "
        f"net {report['net_credited']}"
    )
    return {key: float(value) if isinstance(value, Decimal) else value for key, value in report.items()}


def _trigger_kwargs(schedule: PayoutSchedule | str) -> dict[str, int | str]:
    if PayoutSchedule(schedule) == PayoutSchedule.MONTHLY:
        return {"day": 1, "hour": 0, "minute": 5}
    return {"day_of_week": "mon", "hour": 0, "minute": 5}


def reschedule(schedule: PayoutSchedule | str) -> None:
    if _scheduler and _scheduler.running:
        _scheduler.reschedule_job(JOB_ID, trigger="cron", **_trigger_kwargs(schedule))
        logger.info(f"Settlement job rescheduled to {PayoutSchedule(schedule).value}")


def start() -> None:
    global _scheduler
    if not settings.scheduler_enabled:
        return
    if _scheduler and _scheduler.running:
        return

    schedule = settings_store.current().payout_schedule
    _scheduler = BackgroundScheduler()
    _scheduler.add_job(settle_earnings, "cron", id=JOB_ID, **_trigger_kwargs(schedule))
    _scheduler.start()


def shutdown() -> None:
    global _scheduler
    if _scheduler and _scheduler.running:
        _scheduler.shutdown(wait=False)
    _scheduler = None
