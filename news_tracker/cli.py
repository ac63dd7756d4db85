"""
Command-line interface for the News Tracker package.
"""

import argparse
import json
import logging
import sys
from typing import Optional, Sequence

from .errors import ValidationError
from .memory.types import SourceKind
from .observability.logging import configure_logging
from .text import truncate
from .tracker import NewsTracker

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False, json_logs: bool = False):
    """Configure logging."""
    configure_logging(level=logging.DEBUG if verbose else logging.INFO, json_output=json_logs)


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        prog="news-tracker",
        description="News Tracker - answers location questions from community reports",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Index new posts and comments
  news-tracker index

  # Reprocess the most recent posts only
  news-tracker index --kind post --full

  # Search community memory near a location
  news-tracker search "flooded road" --location Springfield -k 3

  # Ask a question
  news-tracker ask "Is the bridge open?" --location Springfield

  # Run the REST API with background indexing
  news-tracker serve --port 8000 --scheduler
        """
    )

    # Global options
    parser.add_argument(
        "--config",
        help="Path to a .news-tracker.yml configuration file"
    )
    parser.add_argument(
        "--db-path",
        help="SQLite database path (overrides configuration)"
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose logging"
    )
    parser.add_argument(
        "--json-logs",
        action="store_true",
        help="Emit structured JSON log lines"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Index command
    index_parser = subparsers.add_parser(
        "index",
        help="Summarize and embed community content into memory"
    )
    index_parser.add_argument(
        "--kind",
        choices=["post", "comment", "all"],
        default="all",
        help="Which content to index"
    )
    index_parser.add_argument(
        "--full",
        action="store_true",
        help="Reprocess the most recent content instead of only new items"
    )
    index_parser.add_argument(
        "--limit",
        type=int,
        help="Items per kind for --full"
    )

    # Search command
    search_parser = subparsers.add_parser(
        "search",
        help="Search community memory"
    )
    search_parser.add_argument(
        "query",
        help="Search query"
    )
    search_parser.add_argument(
        "--location", "-l",
        help="Case-insensitive location filter"
    )
    search_parser.add_argument(
        "-k",
        type=int,
        default=5,
        help="Maximum results"
    )

    # Ask command
    ask_parser = subparsers.add_parser(
        "ask",
        help="Ask a question about a location"
    )
    ask_parser.add_argument(
        "query",
        help="Question to ask"
    )
    ask_parser.add_argument(
        "--location", "-l",
        required=True,
        help="Location the question is about"
    )
    ask_parser.add_argument(
        "--user",
        default="cli",
        help="Identity recorded in the query history"
    )
    ask_parser.add_argument(
        "--json",
        action="store_true",
        help="Print the full answer as JSON"
    )

    # Cleanup command
    subparsers.add_parser(
        "cleanup-orphans",
        help="Delete memory records whose post or comment no longer exists"
    )

    # Serve command
    serve_parser = subparsers.add_parser(
        "serve",
        help="Run the REST API"
    )
    serve_parser.add_argument(
        "--host",
        default="127.0.0.1",
        help="Bind address"
    )
    serve_parser.add_argument(
        "--port",
        type=int,
        default=8000,
        help="Bind port"
    )
    serve_parser.add_argument(
        "--scheduler",
        action="store_true",
        help="Run hourly background indexing"
    )

    return parser


def main(argv: Optional[Sequence[str]] = None):
    """Main entry point for the CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    setup_logging(args.verbose, args.json_logs)

    tracker = create_tracker(args)
    try:
        if args.command == "index":
            handle_index(tracker, args)
        elif args.command == "search":
            handle_search(tracker, args)
        elif args.command == "ask":
            handle_ask(tracker, args)
        elif args.command == "cleanup-orphans":
            handle_cleanup(tracker, args)
        elif args.command == "serve":
            handle_serve(tracker, args)
    finally:
        tracker.close()


def create_tracker(args) -> NewsTracker:
    """Build a tracker from the global command line options."""
    overrides = {}
    if args.db_path:
        overrides["database"] = {"path": args.db_path}
    return NewsTracker.from_config(args.config, **overrides)


def handle_index(tracker: NewsTracker, args):
    """Handle the index command."""
    if args.full:
        if args.kind != "all":
            print("Error: --full always reprocesses both posts and comments")
            sys.exit(1)
        summary = tracker.process_all_content(args.limit)
    else:
        kind = None if args.kind == "all" else SourceKind(args.kind)
        summary = tracker.process_new(kind)

    print(json.dumps(summary.to_dict(), indent=2, default=str))


def handle_search(tracker: NewsTracker, args):
    """Search memory records."""
    results = tracker.search(args.query, location=args.location, k=args.k)

    if not results:
        print("No memory records found matching your query.")
        return

    print(f"Found {len(results)} matching records:\n")
    for i, result in enumerate(results, 1):
        record = result.record
        score = f"{result.score:.3f}" if result.score is not None else "n/a"
        print(f"{i}. [{record.source_kind.value}] Score: {score}")
        print(f"   ID: {record.id}")
        print(f"   Location: {record.location or 'Unknown'}")
        print(f"   Content: {truncate(record.processed_content.replace(chr(10), ' '), 100)}")
        print()


def handle_ask(tracker: NewsTracker, args):
    """Answer a question."""
    try:
        answer = tracker.answer(args.query, args.location, user=args.user)
    except ValidationError as e:
        print(f"Error: {e}")
        sys.exit(1)

    if args.json:
        print(json.dumps(answer.to_dict(), indent=2, default=str))
        return

    if answer.service_status:
        print(f"Note: {answer.service_status}\n")
    print(answer.direct_answer)
    print()
    print(answer.community_info)
    if answer.news_summary:
        print()
        print(answer.news_summary)
    print(f"\n(source: {answer.source})")


def handle_cleanup(tracker: NewsTracker, args):
    """Delete orphaned memory records."""
    deleted = tracker.cleanup_orphans()
    print(f"Removed {deleted} orphaned memory records")


def handle_serve(tracker: NewsTracker, args):
    """Run the REST API with uvicorn."""
    import uvicorn

    from .api.app import create_app

    app = create_app(tracker, start_scheduler=args.scheduler)
    logger.info(f"Serving News Tracker API on {args.host}:{args.port}")
    uvicorn.run(app, host=args.host, port=args.port, log_config=None)


if __name__ == "__main__":
    main()
