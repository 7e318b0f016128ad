"""Table-backed schedule locks for multi-instance deployments.

Manifesto:
    ``ConcurrencyGuard`` only protects one process.  When several scheduler
    instances poll the same ``report_schedules`` table, the at-most-one
    run guarantee needs a lock every instance can see.  ``LockManager``
    provides it with insert-if-absent semantics on ``report_schedule_locks``
    and TTL expiry, so a crashed instance cannot hold a schedule forever.

    It implements the same ``JobGuard`` interface as the in-process guard,
    so ``SchedulerService`` takes either.

Tags:
    folio, scheduling, distributed-locks, TTL, concurrency
"""

from __future__ import annotations

from datetime import timedelta
from uuid import uuid4

from folio.core.dialect import Dialect, get_dialect
from folio.core.logging import get_logger
from folio.core.protocols import Connection
from folio.core.timestamps import Clock, SystemClock, to_db

logger = get_logger(__name__)

TABLE = "report_schedule_locks"


class LockManager:
    """Durable per-schedule locks with TTL.

    Example:
        >>> manager = LockManager(conn, instance_id="scheduler-1")
        >>> if manager.try_acquire("0f3c..."):
        ...     try:
        ...         run()
        ...     finally:
        ...         manager.release("0f3c...")
    """

    def __init__(
        self,
        conn: Connection,
        dialect: Dialect | None = None,
        instance_id: str | None = None,
        ttl: timedelta = timedelta(hours=1),
        clock: Clock | None = None,
    ) -> None:
        self.conn = conn
        self.dialect = dialect or get_dialect(conn)
        self.instance_id = instance_id or str(uuid4())
        self.ttl = ttl
        self.clock = clock or SystemClock()

    def _ph(self, index: int) -> str:
        """Placeholder at 1-based position."""
        return self.dialect.placeholder(index - 1)

    # === JobGuard ===

    def try_acquire(self, schedule_id: str, source: str | None = None) -> bool:
        """Acquire the lock for *schedule_id*.

        Expired locks are removed first.  An unexpired lock is refused even
        when this instance holds it: a run still on the worker pool owns it
        until ``release``.  Long runs extend their lock with ``refresh``.
        """
        now = self.clock.now()
        expires = now + self.ttl

        try:
            self.conn.execute(
                f"DELETE FROM {TABLE} WHERE schedule_id = {self._ph(1)} AND expires_at < {self._ph(2)}",
                (schedule_id, to_db(now)),
            )
            cursor = self.conn.execute(
                self.dialect.insert_or_ignore(TABLE, ["schedule_id", "locked_by", "locked_at", "expires_at"]),
                (schedule_id, self.instance_id, to_db(now), to_db(expires)),
            )
            self.conn.commit()

            if cursor.rowcount > 0:
                logger.debug("lock.acquired", schedule_id=schedule_id, instance=self.instance_id, source=source)
                return True

            logger.debug("lock.contended", schedule_id=schedule_id, instance=self.instance_id)
            return False

        except Exception as e:
            self.conn.rollback()
            logger.error("lock.acquire_failed", schedule_id=schedule_id, error=str(e))
            return False

    def refresh(self, schedule_id: str) -> bool:
        """Push back the expiry of a lock this instance holds."""
        try:
            cursor = self.conn.execute(
                f"UPDATE {TABLE} SET expires_at = {self._ph(1)} "
                f"WHERE schedule_id = {self._ph(2)} AND locked_by = {self._ph(3)}",
                (to_db(self.clock.now() + self.ttl), schedule_id, self.instance_id),
            )
            self.conn.commit()
            return cursor.rowcount > 0
        except Exception as e:
            self.conn.rollback()
            logger.error("lock.refresh_failed", schedule_id=schedule_id, error=str(e))
            return False

    def release(self, schedule_id: str) -> bool:
        """Release the lock if this instance holds it."""
        try:
            cursor = self.conn.execute(
                f"DELETE FROM {TABLE} WHERE schedule_id = {self._ph(1)} AND locked_by = {self._ph(2)}",
                (schedule_id, self.instance_id),
            )
            self.conn.commit()
            return cursor.rowcount > 0
        except Exception as e:
            self.conn.rollback()
            logger.error("lock.release_failed", schedule_id=schedule_id, error=str(e))
            return False

    def is_running(self, schedule_id: str) -> bool:
        return self.get_lock_holder(schedule_id) is not None

    # === Inspection / maintenance ===

    def get_lock_holder(self, schedule_id: str) -> str | None:
        row = self.conn.execute(
            f"SELECT locked_by FROM {TABLE} WHERE schedule_id = {self._ph(1)} AND expires_at > {self._ph(2)}",
            (schedule_id, to_db(self.clock.now())),
        ).fetchone()
        return row[0] if row else None

    def cleanup_expired_locks(self) -> int:
        cursor = self.conn.execute(
            f"DELETE FROM {TABLE} WHERE expires_at < {self._ph(1)}",
            (to_db(self.clock.now()),),
        )
        self.conn.commit()
        if cursor.rowcount > 0:
            logger.info("lock.expired_cleaned", count=cursor.rowcount)
        return cursor.rowcount

    def list_active_locks(self) -> list[dict[str, str]]:
        cursor = self.conn.execute(
            f"SELECT schedule_id, locked_by, locked_at, expires_at FROM {TABLE} "
            f"WHERE expires_at > {self._ph(1)} ORDER BY locked_at",
            (to_db(self.clock.now()),),
        )
        return [
            {"schedule_id": r[0], "locked_by": r[1], "locked_at": r[2], "expires_at": r[3]}
            for r in cursor.fetchall()
        ]
