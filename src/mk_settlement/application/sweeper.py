"""Background loop that runs the abandoned-order sweep.

Started by the app lifespan when SWEEP_ENABLED is set. Every replica runs the
loop; the Redis lease means only one of them sweeps in a given interval.
"""

import asyncio
import logging

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.mk_settlement.application.service import SettlementService
from src.mk_settlement.infrastructure.sweep_lock import SweepLockProtocol

logger = logging.getLogger(__name__)


async def run_sweep_once(
    service: SettlementService,
    session_factory: async_sessionmaker[AsyncSession],
    lock: SweepLockProtocol,
) -> int | None:
    """One guarded sweep. Returns the number of cancelled orders, None if the lease was held elsewhere."""
    if not await lock.acquire():
        logger.debug("sweep lease held by another process")
        return None
    try:
        async with session_factory() as db:
            return await service.sweep_abandoned(db)
    finally:
        await lock.release()


async def sweep_forever(
    service: SettlementService,
    session_factory: async_sessionmaker[AsyncSession],
    lock: SweepLockProtocol,
    interval_seconds: float,
) -> None:
    while True:
        try:
            await run_sweep_once(service, session_factory, lock)
        except asyncio.CancelledError:
            raise
        except Exception:
            # keep the loop alive; the next tick retries
            logger.exception("order sweep failed")
        await asyncio.sleep(interval_seconds)
