"""
Transaction management utilities.

Provides context managers for explicit transaction boundaries so that
multi-step operations (winner selection, commission accrual) never leave
partial writes behind, plus a per-key lock registry for serializing
read-modify-write sequences on one aggregate inside this process.
"""
import asyncio
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Hashable

from sqlalchemy.ext.asyncio import AsyncSession
import structlog

logger = structlog.get_logger()


@asynccontextmanager
async def atomic(db: AsyncSession) -> AsyncGenerator[AsyncSession, None]:
    """
    Execute operations atomically - all or nothing.

    Usage:
        async with atomic(db) as session:
            proposal.status = ProposalStatus.APPROVED
            session.add(commission)
            # Auto-commits on success, auto-rollbacks on exception

    Raises:
        Exception: Re-raises any exception after rollback
    """
    try:
        yield db
        await db.commit()
    except Exception as e:
        await db.rollback()
        logger.warning("Transaction rolled back", error=str(e), error_type=type(e).__name__)
        raise


@asynccontextmanager
async def savepoint(db: AsyncSession, name: str = "sp") -> AsyncGenerator[AsyncSession, None]:
    """
    Create a savepoint for partial rollback capability.

    Usage:
        async with savepoint(db, "commission_insert") as session:
            # If this fails, only this block rolls back
            session.add(commission)
    """
    async with db.begin_nested():
        try:
            yield db
        except Exception as e:
            logger.debug("Savepoint rolled back", savepoint=name, error=str(e))
            raise


class KeyedLocks:
    """
    Lazily created asyncio locks, one per key.

    An entry lives only while somebody holds or waits for it. Only
    serializes callers within a single event loop; cross-process safety
    comes from row locks and unique constraints in the database.
    """

    def __init__(self):
        self._locks: dict[Hashable, asyncio.Lock] = {}
        self._users: dict[Hashable, int] = {}

    @asynccontextmanager
    async def hold(self, key: Hashable) -> AsyncGenerator[None, None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if not self._users[key]:
                del self._users[key]
                del self._locks[key]

    def __len__(self) -> int:
        return len(self._locks)
