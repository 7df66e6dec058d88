"""Background writer that persists queued audit events."""

from __future__ import annotations

import logging
import queue
import threading
from typing import Optional

from authcore.core.database import SessionFactory, SessionLocal, session_scope
from authcore.schemas.audit import AuditEvent
from authcore.services.audit import AuditService

LOGGER = logging.getLogger("authcore.events_engine.writer")


class AuditWriter:
    """Drains a queue of audit events into the audit log.

    Each event is written in its own transaction, independent of the request
    that emitted it. A failed write is logged and the event dropped.
    """

    def __init__(
        self,
        events: "queue.Queue[AuditEvent]",
        *,
        session_factory: SessionFactory = SessionLocal,
        poll_interval: float = 0.5,
    ) -> None:
        self._events = events
        self._session_factory = session_factory
        self._poll_interval = poll_interval
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="audit-writer", daemon=True)
        self._thread.start()
        LOGGER.info("audit_writer_started")

    def stop(self, timeout: float = 5.0) -> None:
        if self._thread is None:
            return
        self._stop.set()
        self._thread.join(timeout=timeout)
        self._thread = None
        # Anything enqueued after the loop exited.
        self.drain()
        LOGGER.info("audit_writer_stopped")

    def drain(self) -> int:
        """Persist every queued event synchronously; returns the number written."""

        written = 0
        while True:
            try:
                event = self._events.get_nowait()
            except queue.Empty:
                return written
            try:
                if self._write(event):
                    written += 1
            finally:
                self._events.task_done()

    def _run(self) -> None:
        while not self._stop.is_set():
            try:
                event = self._events.get(timeout=self._poll_interval)
            except queue.Empty:
                continue
            try:
                self._write(event)
            finally:
                self._events.task_done()

    def _write(self, event: AuditEvent) -> bool:
        try:
            with session_scope(self._session_factory) as session:
                AuditService(session).record_event(event)
        except Exception as exc:  # noqa: BLE001 - a bad event must not stop the writer
            LOGGER.error(
                "audit_write_failed",
                extra={
                    "event_id": str(event.event_id),
                    "action_type": event.action_type,
                    "error": repr(exc),
                },
            )
            return False
        return True
