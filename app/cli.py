"""Operational commands for the account service."""

from __future__ import annotations

import argparse
import asyncio
import getpass
import json
from collections.abc import Sequence
from datetime import UTC, datetime

from app.config import configure_structlog, get_settings
from app.db.session import dispose_engine, get_session_factory
from app.services.account_service import get_account_service
from app.services.errors import AccountFlowError
from app.services.pending_store import get_pending_verification_store


async def _run_create_admin(email: str, first_name: str, last_name: str, password: str) -> int:
    """Create an admin account; admins are never self-registered."""
    account_service = get_account_service()
    try:
        async with get_session_factory()() as db_session:
            account = await account_service.create_admin(
                db_session=db_session,
                email=email,
                password=password,
                first_name=first_name,
                last_name=last_name,
            )
    except AccountFlowError as exc:
        print(json.dumps({"error": exc.code, "message": exc.detail}))
        return 1
    finally:
        await dispose_engine()
    print(json.dumps({"id": str(account.id), "email": account.email, "role": account.role}))
    return 0


async def _run_purge_expired_verifications() -> int:
    """Delete pending verification records whose code has expired."""
    pending_store = get_pending_verification_store()
    try:
        async with get_session_factory()() as db_session:
            removed = await pending_store.purge_expired(db_session, datetime.now(UTC))
            await db_session.commit()
    finally:
        await dispose_engine()
    print(json.dumps({"removed": removed}))
    return 0


def _build_parser() -> argparse.ArgumentParser:
    """Build command-line parser for supported operational commands."""
    parser = argparse.ArgumentParser(prog="python -m app.cli")
    subcommands = parser.add_subparsers(dest="command", required=True)

    admin_parser = subcommands.add_parser("create-admin")
    admin_parser.add_argument("--email", required=True)
    admin_parser.add_argument("--first-name", required=True)
    admin_parser.add_argument("--last-name", required=True)
    admin_parser.add_argument(
        "--password",
        default=None,
        help="Prompted for when omitted.",
    )

    subcommands.add_parser("purge-expired-verifications")
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    """Run CLI command."""
    parser = _build_parser()
    args = parser.parse_args(argv)
    configure_structlog(get_settings())
    if args.command == "create-admin":
        password = args.password or getpass.getpass("Admin password: ")
        if len(password) < 8:
            parser.error("password must be at least 8 characters")
        return asyncio.run(
            _run_create_admin(
                email=args.email,
                first_name=args.first_name,
                last_name=args.last_name,
                password=password,
            )
        )
    if args.command == "purge-expired-verifications":
        return asyncio.run(_run_purge_expired_verifications())
    parser.error("Unsupported command")
    return 2


if __name__ == "__main__":
    raise SystemExit(main())
