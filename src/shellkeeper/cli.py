"""Command line: run the server or issue credentials offline."""

import argparse
import logging
import sys

from .audit import AuditLogger
from .auth import CredentialManager, Role
from .config import Settings
from .errors import InvalidRole, InvalidSubject


def cmd_serve(args: argparse.Namespace, settings: Settings) -> int:
    """Run the HTTP server."""
    import uvicorn

    from .server import create_app

    if args.host:
        settings.host = args.host
    if args.port:
        settings.port = args.port

    uvicorn.run(
        create_app(settings),
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )
    return 0


def cmd_token(args: argparse.Namespace, settings: Settings) -> int:
    """Issue a credential, e.g. the first admin token."""
    if not settings.auth.jwt_secret:
        print("Error: JWT_SECRET must be set to issue tokens the server will accept.")
        return 1

    credentials = CredentialManager(
        secret=settings.auth.jwt_secret,
        ttl_hours=settings.auth.token_ttl_hours,
        audit=AuditLogger(settings.audit_dir),
    )
    try:
        credential = credentials.issue(args.user_id, args.role, args.ttl_hours)
    except (InvalidRole, InvalidSubject) as e:
        print(f"Error: {e.message}")
        return 1

    print(f"\n✓ Token issued for {credential.user_id} ({credential.role.value})")
    print(f"  Expires: {credential.expires_at.isoformat()}")
    print(f"\n{credential.token}")
    return 0


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="shellkeeper",
        description="Conversational agent with a safe command-execution gateway",
    )

    subparsers = parser.add_subparsers(dest="command", help="Sub-command help")

    serve_parser = subparsers.add_parser("serve", help="Run the HTTP server")
    serve_parser.add_argument("--host", help="Bind address (default: HOST or 127.0.0.1)")
    serve_parser.add_argument("--port", type=int, help="Port (default: PORT or 3002)")

    token_parser = subparsers.add_parser("token", help="Issue an access token")
    token_parser.add_argument("user_id", help="User the token is issued to")
    token_parser.add_argument(
        "role",
        choices=[r.value for r in Role],
        help="Role granted by the token",
    )
    token_parser.add_argument(
        "--ttl-hours",
        type=float,
        default=None,
        help="Lifetime in hours (default: TOKEN_TTL_HOURS or 24)",
    )

    return parser


def run_cli(argv: list[str] | None = None, settings: Settings | None = None) -> int:
    """Run the CLI with given arguments.

    Args:
        argv: Command-line arguments. Uses sys.argv[1:] if None.
        settings: Settings to use. Read from the environment if None.

    Returns:
        Exit code (0 for success, non-zero for error).
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    if settings is None:
        settings = Settings.from_env()
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.command is None:
        args = parser.parse_args(["serve"])

    commands = {
        "serve": cmd_serve,
        "token": cmd_token,
    }

    handler = commands.get(args.command)
    if handler is None:
        parser.print_help()
        return 1

    return handler(args, settings)


if __name__ == "__main__":
    sys.exit(run_cli())
