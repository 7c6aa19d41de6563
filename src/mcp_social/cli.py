"""CLI for the MCP social network server."""
import argparse
import logging
import sys

from .config import settings
from .database import init_engine, init_db, SessionLocal
from .errors import ConfigurationError
from .store import SocialStore


logger = logging.getLogger(__name__)


def _configure_logging():
    # stderr only: stdout carries protocol frames in stdio mode
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


def cmd_init(args):
    """Initialize the database."""
    print("Initializing database...")
    init_db()
    print("Database initialized successfully")


def cmd_serve(args):
    """Run the HTTP server."""
    import uvicorn

    init_db()
    uvicorn.run(
        "mcp_social.api:app",
        host=args.host or settings.host,
        port=args.port or settings.port,
        log_level=settings.log_level.lower(),
    )


def cmd_stdio(args):
    """Serve MCP over stdin/stdout."""
    from .stdio import run_stdio

    init_db()
    run_stdio()


def cmd_stats(args):
    """Show database statistics."""
    init_db()
    db = SessionLocal()

    try:
        counts = SocialStore(db).counts()
        print("MCP Social Network Statistics")
        print("=" * 40)
        print(f"Accounts: {counts['accounts']}")
        print(f"Posts: {counts['posts']}")
        print(f"Follows: {counts['follows']}")
        print(f"Likes: {counts['likes']}")
    finally:
        db.close()


def main(argv=None):
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        description="MCP Social Network - social tools for automated clients"
    )
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # init
    init_parser = subparsers.add_parser("init", help="Initialize database")
    init_parser.set_defaults(func=cmd_init)

    # serve
    serve_parser = subparsers.add_parser("serve", help="Run the HTTP server")
    serve_parser.add_argument("--host", help="Bind address")
    serve_parser.add_argument("--port", type=int, help="Bind port")
    serve_parser.set_defaults(func=cmd_serve)

    # stdio
    stdio_parser = subparsers.add_parser("stdio", help="Serve MCP over stdin/stdout")
    stdio_parser.set_defaults(func=cmd_stdio)

    # stats
    stats_parser = subparsers.add_parser("stats", help="Show statistics")
    stats_parser.set_defaults(func=cmd_stats)

    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    _configure_logging()
    try:
        init_engine()
    except ConfigurationError as e:
        logger.error(f"Startup failed: {e}")
        return 1

    args.func(args)
    return 0


if __name__ == "__main__":
    sys.exit(main())
