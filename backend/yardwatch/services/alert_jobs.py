"""
Alert job definitions for scheduled execution.
Each job builds what it needs from the process-wide services.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from yardwatch.config import get_settings
from yardwatch.errors import DependencyUnavailable
from yardwatch.services.alert_service import get_alert_service

logger = logging.getLogger(__name__)

DAILY_ALERTS_JOB = "daily-alerts"


async def run_daily_sweep(cron: Optional[str] = None) -> Optional[Dict[str, Any]]:
    """
    Re-run every saved search and push new arrivals.

    Args:
        cron: Cron expression of the trigger that fired. A trigger that does
            not match the configured daily schedule is ignored.
    """
    expected = get_settings().alert_cron
    if cron and cron != expected:
        logger.warning(f"Ignoring alert sweep from unexpected trigger {cron!r} (expected {expected!r})")
        return None

    logger.info("Starting daily alert sweep")
    start_time = datetime.now(timezone.utc)

    try:
        summary = await get_alert_service().sweep()
    except DependencyUnavailable as e:
        # Nobody is waiting on a scheduled run; log and wait for tomorrow
        logger.error(f"Alert sweep skipped: {e}")
        return None

    duration = (datetime.now(timezone.utc) - start_time).total_seconds()
    logger.info(f"Daily alert sweep finished in {duration:.1f}s")
    return {**summary, "duration": duration}


# Job registry for easy access
ALERT_JOBS = {
    DAILY_ALERTS_JOB: {
        "func": run_daily_sweep,
        "description": "Re-run saved searches and push new arrivals",
    },
}
