#!/usr/bin/env python3
"""
Run the saved-search alert sweep once, outside the API server.
Use this instead of ENABLE_SCHEDULER when an external cron drives the sweep:
    0 9 * * * cd /path/to/backend && python run_alert_sweep.py
"""
import asyncio
import logging
from datetime import datetime, timezone

from yardwatch.database import init_db
from yardwatch.services.alert_service import get_alert_service


async def main():
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    print(f"=== Daily Alert Sweep ===")
    print(f"Started at: {datetime.now(timezone.utc).isoformat()}")
    print()

    # Initialize database
    await init_db()

    summary = await get_alert_service().sweep()
    print(f"\nChecked {summary['searches']} saved searches")
    print(f"Notified {summary['notified']} ({summary['new_vehicles']} new vehicles)")

    print(f"\nCompleted at: {datetime.now(timezone.utc).isoformat()}")


if __name__ == "__main__":
    asyncio.run(main())
