# hotelguard/tasks.py
import logging
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from hotelguard.ledger import ledger
from hotelguard.settings import settings

log = logging.getLogger("tasks")


async def check_history_integrity():
    log.info("Running history integrity check...")
    tampered = await ledger.verify_history()
    if tampered:
        log.warning("History entries failed snapshot verification: %s", ", ".join(tampered))
    else:
        log.info("History integrity check passed")
    return tampered


scheduler = AsyncIOScheduler()
if settings.INTEGRITY_CHECK_MINUTES > 0:
    scheduler.add_job(check_history_integrity, "interval", minutes=settings.INTEGRITY_CHECK_MINUTES)
