"""Audit event delivery: dispatch, publish, and persist."""

from .dispatcher import AuditDispatcher, AuditSink, build_audit_dispatcher  # noqa: F401
from .publisher import EventPublisher, NullEventPublisher, QueueEventPublisher  # noqa: F401
from .writer import AuditWriter  # noqa: F401
