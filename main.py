from __future__ import annotations

import argparse
import json
import logging
from typing import Any

from dotenv import load_dotenv

from starter.api.errors import ApiError
from starter.auth.models import Role
from starter.auth.repository import AuthRepository
from starter.auth.service import AuthService
from starter.core.config import AppConfig, ConfigError
from starter.core.db import create_db_engine, create_session_factory, init_schema
from starter.core.logging import setup_logging


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Maintenance commands for the auth database."
    )
    commands = parser.add_subparsers(dest="command", required=True)
    commands.add_parser(
        "cleanup-tokens",
        help="Delete expired refresh tokens once and report how many were removed.",
    )
    commands.add_parser(
        "bootstrap-admin",
        help="Create the admin account from AUTH_ADMIN_* settings if missing.",
    )
    set_role = commands.add_parser("set-role", help="Change the role of one account.")
    set_role.add_argument("--user-id", required=True, help="Target account id.")
    set_role.add_argument(
        "--role",
        required=True,
        choices=[role.value for role in Role],
        help="New role.",
    )
    return parser


def run_command(args: argparse.Namespace, service: AuthService) -> dict[str, Any]:
    if args.command == "cleanup-tokens":
        return {"status": "ok", "removed": service.cleanup_expired_tokens()}
    if args.command == "bootstrap-admin":
        admin = service.bootstrap_admin_user()
        return {"status": "created" if admin else "skipped", "user_id": admin.id if admin else ""}
    if args.command == "set-role":
        user = service.update_user_role(args.user_id, Role(args.role))
        return {"status": "ok", "user_id": user.id, "role": str(user.role)}
    raise ValueError(f"Unknown command: {args.command}")


def main() -> None:
    load_dotenv()
    args = build_parser().parse_args()
    try:
        config = AppConfig.from_env()
    except ConfigError as exc:
        raise SystemExit(f"Configuration error: {exc}") from exc
    setup_logging(config.logging.level)
    logger = logging.getLogger("main")

    engine = create_db_engine(config.database)
    init_schema(engine)
    service = AuthService(AuthRepository(create_session_factory(engine)), config.auth)
    try:
        summary = run_command(args, service)
    except ApiError as exc:
        raise SystemExit(f"{exc.error_code}: {exc.detail['message']}") from exc
    finally:
        engine.dispose()

    logger.info("Command %s completed.", args.command)
    print(json.dumps(summary, ensure_ascii=False, indent=2))


if __name__ == "__main__":
    main()
