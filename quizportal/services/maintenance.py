"""Maintenance-mode switch with a process-owned TTL cache.

The cache object is created once at startup and kept on ``app.state``;
nothing here is module-level mutable state, so tests can build isolated
instances with their own TTL and clock.
"""

import logging
import threading
import time
from typing import Callable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from quizportal.db.models import PortalSetting

logger = logging.getLogger(__name__)

MAINTENANCE_KEY = "maintenance_mode"
_TRUTHY = {"1", "true", "yes", "on"}


def read_maintenance_flag(db: Session) -> bool:
    row = db.query(PortalSetting).filter(PortalSetting.key == MAINTENANCE_KEY).first()
    return row is not None and row.value.strip().lower() in _TRUTHY


def write_maintenance_flag(db: Session, enabled: bool) -> None:
    row = db.query(PortalSetting).filter(PortalSetting.key == MAINTENANCE_KEY).first()
    if row is None:
        row = PortalSetting(key=MAINTENANCE_KEY)
        db.add(row)
    row.value = "true" if enabled else "false"
    db.commit()
    logger.info("Maintenance mode %s", "enabled" if enabled else "disabled")


class MaintenanceModeCache:
    """Caches the maintenance flag for ``ttl_seconds``.

    A failed read is logged and treated as "not in maintenance" without
    being cached, so the next request retries.
    """

    def __init__(
        self,
        ttl_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._value: bool | None = None
        self._fetched_at = 0.0
        self._lock = threading.Lock()

    def is_enabled(self, db: Session) -> bool:
        with self._lock:
            now = self._clock()
            if self._value is not None and now - self._fetched_at < self.ttl_seconds:
                return self._value
            try:
                value = read_maintenance_flag(db)
            except SQLAlchemyError as e:
                logger.warning("Maintenance flag read failed (non-fatal): %s", e)
                return False
            self._value = value
            self._fetched_at = now
            return value

    def invalidate(self) -> None:
        with self._lock:
            self._value = None
            self._fetched_at = 0.0
