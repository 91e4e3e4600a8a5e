"""Per-run exclusive locks around write transactions."""

from __future__ import annotations

import asyncio
import logging
import weakref
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession

from mypayroll.config import get_settings
from mypayroll.database import is_postgres, try_advisory_xact_lock
from mypayroll.errors import ConcurrencyConflict

logger = logging.getLogger(__name__)


class RunLockManager:
    """Serializes writers per key and commits their work as one transaction.

    Writers to the same key (a run id, or a company period while a run is
    being created) wait up to ``timeout`` seconds for the in-process lock;
    on PostgreSQL a transaction-scoped advisory lock also serializes writers
    across processes. The body runs inside the transaction: it is committed
    when the block exits normally and rolled back when it raises. Readers
    never take the lock.
    """

    _locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()

    def __init__(self, session: AsyncSession, timeout: float | None = None):
        self.session = session
        self.timeout = timeout if timeout is not None else get_settings().run_lock_timeout_seconds

    @classmethod
    def _lock_for(cls, key: str) -> asyncio.Lock:
        lock = cls._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            cls._locks[key] = lock
        return lock

    @asynccontextmanager
    async def exclusive(self, key: str) -> AsyncGenerator[None, None]:
        """Hold the lock for ``key`` and commit the enclosed unit of work."""
        lock = self._lock_for(key)
        try:
            await asyncio.wait_for(lock.acquire(), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.warning("Lock wait for %s exceeded %ss", key, self.timeout)
            raise ConcurrencyConflict(key, self.timeout) from None

        try:
            if is_postgres(self.session):
                if not await try_advisory_xact_lock(self.session, key):
                    raise ConcurrencyConflict(key, self.timeout)
            yield
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise
        finally:
            lock.release()


def run_key(run_id: object) -> str:
    """Lock key for an existing run."""
    return f"payroll_run:{run_id}"


def period_key(company_id: object, year: int, month: int) -> str:
    """Lock key for creating runs in a company period."""
    return f"payroll_period:{company_id}:{year}-{month:02d}"


def employee_key(employee_id: object) -> str:
    """Lock key for an employee's resignation lifecycle."""
    return f"employee:{employee_id}"
