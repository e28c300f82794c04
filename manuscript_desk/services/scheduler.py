# manuscript_desk/services/scheduler.py
import logging
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from manuscript_desk.database import async_session_maker
from manuscript_desk.services.lifecycle import auto_approve_overdue, remind_overdue
from manuscript_desk.services.notifications import NotificationGateway, build_notifier
from manuscript_desk.settings.config import settings

scheduler: AsyncIOScheduler | None = None
logger = logging.getLogger(__name__)


def _pick_tz(name: str | None):
    if not name:
        return None
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        # tzdata missing the key
        logger.warning("Unknown APP_TZ %r; using UTC", name)
        return ZoneInfo("UTC")


async def run_sweeps(notifier: NotificationGateway | None = None) -> dict:
    """Auto-approve what passed the SLA window, then remind the rest."""
    notifier = notifier or build_notifier(settings)
    async with async_session_maker() as db:
        approved = await auto_approve_overdue(db, settings.AUTO_APPROVE_HOURS)
        reminded = await remind_overdue(
            db, notifier, settings.REMINDER_HOURS, expire_hours=settings.AUTO_APPROVE_HOURS,
        )
    return {"reminders": reminded.summary(), "auto_approved": len(approved)}


async def job_sla_sweep():
    try:
        res = await run_sweeps()
        logger.info("SLA sweep complete: %s", res)
    except Exception:
        logger.exception("SLA sweep failed")


def start_scheduler():
    global scheduler
    if scheduler:
        return
    if not settings.SCHEDULER_ENABLED:
        logger.info("SLA scheduler disabled (set SCHEDULER_ENABLED=1 to enable)")
        return
    tz = _pick_tz(settings.APP_TZ)
    scheduler = AsyncIOScheduler(timezone=tz) if tz else AsyncIOScheduler()

    cron_expr = (settings.SWEEP_CRON or "").strip()
    try:
        trigger = CronTrigger.from_crontab(cron_expr, timezone=tz)
        logger.info("SLA scheduler using SWEEP_CRON='%s' tz=%s", cron_expr, settings.APP_TZ)
    except ValueError:
        # On invalid crontab, fall back to hourly
        trigger = CronTrigger(minute=0, timezone=tz)
        logger.warning("Invalid SWEEP_CRON; falling back to hourly")

    scheduler.add_job(job_sla_sweep, trigger, max_instances=1, coalesce=True)
    scheduler.start()
    logger.info("SLA scheduler started")


def stop_scheduler():
    global scheduler
    if scheduler:
        scheduler.shutdown(wait=False)
        scheduler = None
