#!/usr/bin/env python
"""Recompute the audit hash chain and report the first break, if any."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import Optional

from sqlalchemy.orm import Session, sessionmaker

from authcore.core.database import SessionLocal, build_engine, session_scope
from authcore.services.audit_verifier import AuditVerificationError, AuditVerifier


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Verify the authcore audit log hash chain.")
    parser.add_argument("--start-sequence", type=int, default=None, help="First sequence to check (inclusive).")
    parser.add_argument("--end-sequence", type=int, default=None, help="Last sequence to check (inclusive).")
    parser.add_argument(
        "--database-url",
        default=None,
        help="Verify this database instead of AUTHCORE_DATABASE_URL.",
    )
    parser.add_argument("--json", action="store_true", help="Print a JSON summary on stdout.")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging.")
    return parser.parse_args(argv)


def main(argv: Optional[list[str]] = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    factory = SessionLocal
    if args.database_url:
        factory = sessionmaker(bind=build_engine(args.database_url), class_=Session, expire_on_commit=False)

    try:
        with session_scope(factory) as session:
            result = AuditVerifier(session).verify(
                start_sequence=args.start_sequence,
                end_sequence=args.end_sequence,
            )
    except AuditVerificationError as exc:
        if args.json:
            print(json.dumps({"ok": False, "error": str(exc)}))
        logging.error("Audit verification failed: %s", exc)
        return 1

    if args.json:
        print(
            json.dumps(
                {
                    "ok": True,
                    "checked": result.checked,
                    "start_sequence": result.start_sequence,
                    "end_sequence": result.end_sequence,
                }
            )
        )
    logging.info(
        "Audit chain intact from sequence %s to %s (%s entries checked)",
        result.start_sequence,
        result.end_sequence,
        result.checked,
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
