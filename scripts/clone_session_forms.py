from __future__ import annotations

import argparse
import asyncio

from auditcycle.core.logging import configure_logging
from auditcycle.persistence.db import SessionLocal
from auditcycle.services.sessions import check_startup_ongoing_session, run_session_start_clone


async def _main(year_session: str | None) -> None:
    configure_logging()
    if year_session is None:
        # Same recovery path the API runs on startup.
        outcome = await check_startup_ongoing_session(SessionLocal)
        print(f"outcome={outcome.value if outcome else 'no_current_session'}")
        return
    outcome = await run_session_start_clone(SessionLocal, year_session)
    print(f"year_session={year_session} outcome={outcome.value}")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Clone form generations for a year session.")
    parser.add_argument("--year-session", default=None, help="Defaults to the currently running session.")
    args = parser.parse_args()
    asyncio.run(_main(args.year_session))
