# cli/cli.py
"""
CLI registry and dispatcher for buyer-lead administration commands.
"""
from __future__ import annotations

import argparse
import asyncio
import os
import sys
from pathlib import Path
from typing import Callable, Dict, Optional

# Ensure project root is in path for imports
_cli_dir = Path(__file__).parent
_project_root = _cli_dir.parent
if str(_project_root) not in sys.path:
    sys.path.insert(0, str(_project_root))

from buyer_leads.core.config import settings
from buyer_leads.core.logging import configure_structlog
from buyer_leads.db import session as db_session
from buyer_leads.middleware.auth import issue_user_token
from buyer_leads.services.auth import Caller, find_or_create_user, find_user
from buyer_leads.services.lead_import import LeadImporter
from buyer_leads.services.lead_query import LeadQuery
from buyer_leads.services.store import SqlStorage


# Output formatting utilities
def _supports_color() -> bool:
    """Check if terminal supports ANSI color codes."""
    if sys.platform == "win32":
        return os.getenv("TERM") == "xterm" or os.getenv("ANSICON") is not None
    return sys.stdout.isatty()


SUPPORTS_COLOR = _supports_color()

GREEN = '\033[92m' if SUPPORTS_COLOR else ''
RED = '\033[91m' if SUPPORTS_COLOR else ''
BLUE = '\033[94m' if SUPPORTS_COLOR else ''
RESET = '\033[0m' if SUPPORTS_COLOR else ''


def print_success(message: str):
    print(f"{GREEN}[✓]{RESET} {message}", file=sys.stderr)


def print_error(message: str):
    print(f"{RED}[✗]{RESET} {message}", file=sys.stderr)


def print_info(message: str):
    print(f"{BLUE}[i]{RESET} {message}", file=sys.stderr)


async def _caller_for(email: str) -> Caller:
    async with db_session.session_scope() as session:
        user = await find_or_create_user(session, email)
        return Caller(id=user.id, email=user.email)


async def _existing_caller(email: str) -> Optional[Caller]:
    async with db_session.session_scope() as session:
        user = await find_user(session, email)
        return Caller(id=user.id, email=user.email) if user else None


# Command functions
async def cmd_init_db(args: argparse.Namespace) -> int:
    """Command: create all tables."""
    print_info("Creating tables...")
    await db_session.init_models()
    print_success("Database initialized")
    return 0


async def cmd_token(args: argparse.Namespace) -> int:
    """Command: print a bearer token for a user, registering them if needed."""
    caller = await _caller_for(args.email)
    print(issue_user_token(caller.id, caller.email))
    return 0


async def cmd_import(args: argparse.Namespace) -> int:
    """Command: import a CSV file on behalf of a user."""
    path = Path(args.file)
    if not path.is_file():
        print_error(f"File not found: {path}")
        return 1

    caller = await _caller_for(args.email)
    async with db_session.session_scope() as session:
        result = await LeadImporter(SqlStorage(session)).import_csv(caller, path.read_bytes())

    if result.success:
        print_success(result.message)
        return 0

    print_error(result.message)
    for error in result.errors:
        print_error(f"  row {error.row} {error.field}: {error.message}")
    return 1


async def cmd_export(args: argparse.Namespace) -> int:
    """Command: export leads as CSV to a file or stdout."""
    params = {key: value for key, value in {
        "status": args.status,
        "city": args.city,
        "search": args.search,
    }.items() if value}

    caller = await _existing_caller(args.email)
    if caller is None:
        print_error(f"No user with email {args.email}")
        return 1

    async with db_session.session_scope() as session:
        content = await LeadQuery(SqlStorage(session)).export_csv(caller, params)

    if args.output:
        Path(args.output).write_text(content, encoding="utf-8")
        print_success(f"Wrote {args.output}")
    else:
        sys.stdout.write(content)
    return 0


# Command registry
COMMANDS: Dict[str, Callable] = {
    'init-db': cmd_init_db,
    'token': cmd_token,
    'import': cmd_import,
    'export': cmd_export,
}


def create_parser() -> argparse.ArgumentParser:
    """Create argument parser with all commands."""
    parser = argparse.ArgumentParser(
        description='Buyer Leads CLI',
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    subparsers = parser.add_subparsers(dest='command', help='Command to execute')

    subparsers.add_parser('init-db', help='Create database tables')

    token_parser = subparsers.add_parser('token', help='Issue a bearer token')
    token_parser.add_argument('--email', required=True, help='User email')

    import_parser = subparsers.add_parser('import', help='Import leads from CSV')
    import_parser.add_argument('file', help='CSV file path')
    import_parser.add_argument('--email', required=True, help='Owner email')

    export_parser = subparsers.add_parser('export', help='Export leads to CSV')
    export_parser.add_argument('--email', required=True, help='Email of an existing user')
    export_parser.add_argument('--status', help='Filter by status')
    export_parser.add_argument('--city', help='Filter by city')
    export_parser.add_argument('--search', help='Search name, phone or email')
    export_parser.add_argument('--output', '-o', help='Output file (default: stdout)')

    return parser


async def _run(command_func: Callable, parsed_args: argparse.Namespace) -> int:
    try:
        return await command_func(parsed_args)
    finally:
        await db_session.dispose_engine()


def main(args: Optional[list] = None) -> int:
    """Main CLI entry point."""
    parser = create_parser()
    parsed_args = parser.parse_args(args)

    if not parsed_args.command:
        parser.print_help()
        return 1

    command_func = COMMANDS.get(parsed_args.command)
    if not command_func:
        print_error(f"Unknown command: {parsed_args.command}")
        parser.print_help()
        return 1

    configure_structlog(stream=sys.stderr)

    try:
        return asyncio.run(_run(command_func, parsed_args))
    except KeyboardInterrupt:
        print_error("Interrupted by user")
        return 130
    except Exception as e:
        print_error(f"Error executing command: {str(e)}")
        if settings.debug:
            import traceback
            traceback.print_exc()
        return 1


if __name__ == '__main__':
    sys.exit(main())
