"""LAIKA — Scheduler Jobs.

APScheduler monthly job that computes the previous month for every scheduled
tenant, one tenant after the other.
"""

from datetime import date, timedelta

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from laika.config import settings
from laika.core.errors import LaikaError
from laika.engine.coordinator import run_for_tenant
from laika.core.logging import get_logger

logger = get_logger("scheduler")

scheduler = AsyncIOScheduler()


def previous_month(today: date) -> date:
    """First day of the month before ``today``."""
    return (today.replace(day=1) - timedelta(days=1)).replace(day=1)


async def monthly_fetch_job(today: date | None = None):
    """Run last month for each scheduled tenant; one failure does not stop the rest."""
    month = previous_month(today or date.today()).isoformat()
    logger.info(f"Scheduled monthly fetch starting for {month}...")
    for tenant in settings.scheduled_tenants:
        try:
            report = await run_for_tenant(tenant, month)
            logger.info(
                f"Scheduled fetch complete: {report.values_written} values",
                extra={"tenant": tenant, "report_month": month},
            )
        except LaikaError as e:
            logger.error(
                f"Scheduled fetch failed: {e}",
                extra={"tenant": tenant, "report_month": month},
            )
        except Exception as e:
            logger.exception(
                f"❌ Scheduled fetch crashed: {e}",
                extra={"tenant": tenant, "report_month": month},
            )


def start_scheduler():
    """Configure and start the scheduler."""
    if not settings.scheduler_enabled:
        logger.info("Scheduler disabled via config")
        return

    scheduler.add_job(
        monthly_fetch_job,
        "cron",
        day=settings.schedule_day,
        hour=settings.schedule_hour,
        minute=0,
        id="monthly_fetch",
        replace_existing=True,
        misfire_grace_time=3600,
    )
    scheduler.start()
    logger.info(
        f"Scheduler started. Monthly fetch on day {settings.schedule_day} "
        f"at {settings.schedule_hour}:00"
    )


def stop_scheduler():
    """Shutdown the scheduler gracefully."""
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped")
