"""Command line entry point for the Skland session engine."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from dataclasses import replace
from typing import Any, Sequence

from connectors.skland.config import SklandConfig
from services.session.errors import AuthError
from services.session.orchestrator import AuthSnapshot

from .composition_root import AuthCompositionRoot

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="skland-session", description="Skland login session manager")
    parser.add_argument("--log-level", default="WARNING", help="Python logging level name.")
    parser.add_argument("--state-db", help="SQLite file holding the stored session. Defaults to SKLAND_STATE_DB.")
    commands = parser.add_subparsers(dest="command", required=True)

    send_code = commands.add_parser("send-code", help="Send an SMS login code.")
    send_code.add_argument("--phone", required=True)

    login = commands.add_parser("login", help="Log in with a password or SMS code.")
    login.add_argument("--phone", required=True)
    proof = login.add_mutually_exclusive_group(required=True)
    proof.add_argument("--code", help="SMS code received after send-code.")
    proof.add_argument(
        "--password-stdin",
        action="store_true",
        help="Read the password from the first line of stdin.",
    )

    commands.add_parser("status", help="Restore the stored session and print its state.")
    commands.add_parser("logout", help="Forget the stored session.")
    return parser


def _snapshot_payload(snapshot: AuthSnapshot) -> dict[str, Any]:
    return {
        "state": snapshot.state.value,
        "credential": snapshot.credential_status.value,
        "account_id": snapshot.account_id,
        "profile": dict(snapshot.profile) if snapshot.profile is not None else None,
        "last_error": snapshot.last_error_code,
    }


async def _run(args: argparse.Namespace, config: SklandConfig) -> dict[str, Any]:
    root = AuthCompositionRoot(config_loader=lambda: config, restore_on_start=args.command == "status")
    await root.start()
    try:
        orchestrator = root.orchestrator
        if args.command == "send-code":
            await orchestrator.send_sms_code(args.phone)
            return {"sent": True}
        if args.command == "login":
            if args.password_stdin:
                password = sys.stdin.readline().rstrip("\n")
                await orchestrator.login_with_password(args.phone, password)
            else:
                await orchestrator.login_with_sms_code(args.phone, args.code)
            return _snapshot_payload(await orchestrator.refresh_profile())
        if args.command == "status":
            await orchestrator.wait_for_background()
            return _snapshot_payload(orchestrator.snapshot)
        return _snapshot_payload(await orchestrator.logout())
    finally:
        await root.shutdown()


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=getattr(logging, str(args.log_level).upper(), logging.WARNING))

    config = SklandConfig.from_env()
    if args.state_db:
        config = replace(config, state_db_path=args.state_db)

    try:
        result = asyncio.run(_run(args, config))
    except AuthError as exc:
        logger.debug("skland_cli_failed", extra={"event": "cli", "kind": exc.kind.value})
        print(json.dumps(exc.to_dict(), ensure_ascii=False), file=sys.stderr, flush=True)
        return 1

    print(json.dumps(result, ensure_ascii=False, indent=2), flush=True)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
