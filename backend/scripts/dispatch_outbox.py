"""Deliver pending outbox events (notifications and referral rewards).

Routes dispatch their own events after each response; this command picks
up anything left behind by a crash or a failed attempt.

Run inside Docker:
    docker compose exec backend python -m scripts.dispatch_outbox
"""

import asyncio
import sys
from pathlib import Path

# Add backend to path so imports work when run as a script
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from stayride.config import settings
from stayride.database import async_session_factory, engine
from stayride.services.notifier import Notifier
from stayride.services.side_effects import run_outbox


async def dispatch() -> None:
    result = await run_outbox(async_session_factory, Notifier(), settings)
    print(f"📬 Outbox: sent={result.sent} failed={result.failed} skipped={result.skipped}")
    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(dispatch())
