from __future__ import annotations

import asyncio

from auditcycle.core.logging import configure_logging
from auditcycle.persistence.db import SessionLocal
from auditcycle.services.maintenance import run_daily_maintenance
from auditcycle.services.notifications import BroadcastMailer


async def _main() -> None:
    # Manual run of the midnight job, e.g. after the API was down at midnight.
    configure_logging()
    report = await run_daily_maintenance(SessionLocal, BroadcastMailer())
    print(f"removed_files={len(report.removed_files)}")
    print(f"reminders_sent={','.join(report.reminders_sent) or '-'}")
    if report.errors:
        print(f"errors={','.join(report.errors)}")


if __name__ == "__main__":
    asyncio.run(_main())
