"""Periodic deletion of sessions past their retention window."""

from __future__ import annotations

import logging
import sys
import threading
from datetime import timedelta
from typing import Optional

from authcore.core.config import AppSettings, get_settings
from authcore.core.database import SessionFactory, SessionLocal, session_scope
from authcore.core.logging import configure_logging
from authcore.services.sessions import SessionLedger

LOGGER = logging.getLogger("authcore.workers.session_purge")


def purge_once(settings: AppSettings, session_factory: SessionFactory = SessionLocal) -> int:
    with session_scope(session_factory) as session:
        ledger = SessionLedger(session, ttl_seconds=settings.refresh_token_ttl)
        return ledger.purge_expired(retention=timedelta(days=settings.session_retention_days))


class SessionPurgeWorker:
    """Runs ``purge_once`` every ``session_purge_interval`` seconds until stopped."""

    def __init__(
        self,
        settings: AppSettings,
        *,
        session_factory: SessionFactory = SessionLocal,
        stop_event: Optional[threading.Event] = None,
    ) -> None:
        self._settings = settings
        self._session_factory = session_factory
        self._stop = stop_event or threading.Event()

    def stop(self) -> None:
        self._stop.set()

    def run_forever(self) -> None:
        interval = max(self._settings.session_purge_interval, 1)
        LOGGER.info("session_purge_started", extra={"interval_seconds": interval})
        while not self._stop.is_set():
            try:
                purge_once(self._settings, self._session_factory)
            except Exception as exc:  # noqa: BLE001 - retry on the next tick
                LOGGER.exception("session_purge_failed", extra={"error": str(exc)})
            self._stop.wait(interval)
        LOGGER.info("session_purge_stopped")


def main() -> None:
    settings = get_settings()
    configure_logging(settings)
    worker = SessionPurgeWorker(settings)
    try:
        worker.run_forever()
    except KeyboardInterrupt:
        LOGGER.info("session_purge_interrupted")
        sys.exit(0)


if __name__ == "__main__":
    main()
