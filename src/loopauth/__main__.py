"""loopauth entry point.

Changes:
  - 2026-10-16: Added `refresh --force`.
  - 2026-10-14: Added status and logout subcommands.
  - 2026-10-13: Initial `loopauth login`.
"""

import argparse
import asyncio
import json
import logging
from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as get_version

from loopauth.auth_manager import AuthManager
from loopauth.logging_setup import setup_logging

logger = logging.getLogger(__name__)


def _version() -> str:
    try:
        return get_version("loopauth")
    except PackageNotFoundError:
        return "unknown"


async def run_login(manager: AuthManager) -> int:
    result = await manager.login()
    if result.success:
        print("Signed in.")
        return 0
    print(f"Sign-in failed ({result.error_code}): {result.error}")
    return 1


async def run_refresh(manager: AuthManager, force: bool) -> int:
    if await manager.refresh_token_if_needed(force=force):
        print("Access token is valid.")
        return 0
    print(f"Could not refresh access token: {manager.store.error or 'not signed in'}")
    return 1


def run_status(manager: AuthManager) -> int:
    print(json.dumps(manager.get_auth_status(), indent=2))
    return 0


def run_logout(manager: AuthManager) -> int:
    manager.logout()
    print("Signed out.")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="loopauth",
        description="Sign in to Google from the desktop over a loopback redirect",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  loopauth login                     Open the consent window and sign in
  loopauth status                    Show the stored credential's status
  loopauth refresh --force           Refresh the access token now
  loopauth logout                    Forget the stored credential
""",
    )
    parser.add_argument(
        "--verbose", action="store_true", help="Enable debug logging"
    )
    parser.add_argument(
        "--version",
        "-v",
        action="version",
        version=f"%(prog)s {_version()}",
    )

    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("login", help="Run the interactive sign-in flow")
    sub.add_parser("logout", help="Clear the stored credential")
    sub.add_parser("status", help="Print authentication status as JSON")
    refresh = sub.add_parser("refresh", help="Refresh the access token if it is close to expiry")
    refresh.add_argument(
        "--force", action="store_true", help="Refresh even if the token is not close to expiry"
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)
    setup_logging(level="DEBUG" if args.verbose else "INFO")

    manager = AuthManager()

    try:
        if args.command == "login":
            return asyncio.run(run_login(manager))
        if args.command == "refresh":
            return asyncio.run(run_refresh(manager, args.force))
        if args.command == "status":
            return run_status(manager)
        return run_logout(manager)
    except KeyboardInterrupt:
        logger.info("Sign-in interrupted.")
        return 130


if __name__ == "__main__":
    raise SystemExit(main())
