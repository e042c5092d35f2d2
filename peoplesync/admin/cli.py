"""Administrative CLI for the organization lifecycle.

Organizations are never created by user-facing flows; this is the path that
creates them and switches them on or off.

    peoplesync-admin create-org "Acme Corp" hr@acme.test
    peoplesync-admin deactivate-org <organization-id>
    peoplesync-admin activate-org <organization-id>
"""

from __future__ import annotations

import argparse
import asyncio
import sys

import structlog

from peoplesync.config.logging import setup_logging
from peoplesync.config.settings import get_settings
from peoplesync.exceptions import DuplicateRecordError
from peoplesync.storage.database import create_engine
from peoplesync.storage.repositories.organizations import DatabaseOrganizationRepository

logger = structlog.get_logger(__name__)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="peoplesync-admin")
    sub = parser.add_subparsers(dest="command", required=True)

    create = sub.add_parser("create-org", help="Create an active organization")
    create.add_argument("name")
    create.add_argument("email")
    create.add_argument("--display-name", default="")
    create.add_argument("--id", dest="organization_id", default=None)

    for command, help_text in (
        ("deactivate-org", "Cut off every user of an organization"),
        ("activate-org", "Restore access for an organization"),
    ):
        toggle = sub.add_parser(command, help=help_text)
        toggle.add_argument("organization_id")

    return parser


async def _run(args: argparse.Namespace) -> int:
    settings = get_settings()
    engine = create_engine(settings.database_url or "")
    repo = DatabaseOrganizationRepository(engine)
    try:
        if args.command == "create-org":
            try:
                organization = await repo.create(
                    name=args.name,
                    email=args.email,
                    display_name=args.display_name,
                    organization_id=args.organization_id,
                )
            except DuplicateRecordError as exc:
                logger.error("organization_create_failed", error=str(exc))
                return 1
            print(organization.id)
            return 0

        organization = await repo.set_active(
            args.organization_id, is_active=args.command == "activate-org"
        )
        if organization is None:
            logger.error("organization_not_found", org_id=args.organization_id)
            return 1
        return 0
    finally:
        await engine.dispose()


def main(argv: list[str] | None = None) -> None:
    args = _build_parser().parse_args(argv)
    setup_logging(log_level="INFO", json_output=True)
    sys.exit(asyncio.run(_run(args)))


if __name__ == "__main__":
    main()
