"""Entry point for the out-of-process audit writer fed by SQS."""

from __future__ import annotations

import logging

from authcore.core.config import get_settings
from authcore.core.logging import configure_logging
from authcore.events_engine.consumers.audit import build_audit_consumer_from_env

LOGGER = logging.getLogger("authcore.workers.audit_consumer")


def main() -> None:
    configure_logging(get_settings())
    consumer = build_audit_consumer_from_env()
    try:
        consumer.run_forever()
    except KeyboardInterrupt:
        consumer.stop()
        LOGGER.info("audit_consumer_interrupted")


if __name__ == "__main__":
    main()
