#!/usr/bin/env python
"""CLI utility to provision the first administrator."""

from __future__ import annotations

import argparse
import getpass
import logging
import sys
from typing import Optional

from authcore.core.database import session_scope
from authcore.services.bootstrap import bootstrap_admin
from authcore.services.credentials import PrincipalConflictError


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Create an administrator principal and role.")
    parser.add_argument("username", help="Administrator username.")
    parser.add_argument("--email", default=None, help="Optional email address.")
    parser.add_argument("--role-name", default="Administrator", help="Name of the administrator role.")
    parser.add_argument("--password", default=None, help="Password; prompted for when omitted.")
    return parser.parse_args(argv)


def main(argv: Optional[list[str]] = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    password = args.password or getpass.getpass("Password: ")
    if not password:
        logging.error("A password is required")
        return 2

    try:
        with session_scope() as session:
            result = bootstrap_admin(
                session,
                username=args.username,
                password=password,
                email=args.email,
                role_name=args.role_name,
            )
    except PrincipalConflictError as exc:
        logging.error("Bootstrap failed: %s", exc)
        return 1

    logging.info(
        "Administrator %s (%s) holds role %s",
        args.username,
        result.principal_id,
        args.role_name,
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
