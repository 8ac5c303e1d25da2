"""CLI entrypoint: python -m newsmon {init-db|ingest|classify|resolve-entities|stats|articles|entities|runs}."""

from __future__ import annotations

import argparse
import asyncio
import inspect
import json
import logging
import logging.handlers
import sys
from pathlib import Path

from newsmon.config import get_db_path, load_config
from newsmon.db import (
    get_connection,
    get_recent_runs,
    get_stats,
    init_db,
    list_articles,
    list_entities,
    list_entity_articles,
)
from newsmon.models import Signals


def setup_logging(config: dict, verbose: bool = False) -> None:
    """Configure logging with console + rotating file output."""
    root = logging.getLogger()
    root.setLevel(logging.DEBUG if verbose else logging.INFO)

    fmt = logging.Formatter(
        "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    console = logging.StreamHandler()
    console.setFormatter(fmt)
    root.addHandler(console)

    # File handler next to the database (rotate at 5MB, keep 3 backups)
    log_dir = Path(get_db_path(config)).parent
    log_dir.mkdir(parents=True, exist_ok=True)
    file_handler = logging.handlers.RotatingFileHandler(
        str(log_dir / "newsmon.log"), maxBytes=5 * 1024 * 1024, backupCount=3,
    )
    file_handler.setFormatter(fmt)
    root.addHandler(file_handler)

    # Quiet noisy libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("anthropic").setLevel(logging.WARNING)


def cmd_init_db(config: dict, args: argparse.Namespace) -> int:
    """Initialize the SQLite database."""
    db_path = get_db_path(config)
    init_db(db_path)
    print(f"Database initialized at {db_path}")
    return 0


async def cmd_ingest(config: dict, args: argparse.Namespace) -> int:
    """Run ingestion for the given sources (default: all enabled)."""
    from newsmon.pipeline import run_all_ingestion

    init_db(get_db_path(config))
    batch = await run_all_ingestion(
        config,
        sources=args.sources or None,
        triggered_by=args.triggered_by,
        lookback_hours=args.lookback_hours,
    )
    for r in batch.results:
        if r.success:
            print(
                f"  {r.source}: run #{r.run_id} fetched {r.articles_fetched}, "
                f"new {r.articles_new}, duplicate {r.articles_duplicate}, "
                f"filtered {r.articles_filtered}"
            )
        else:
            print(f"  {r.source}: FAILED ({r.status_code}) {r.error}")
    if args.json:
        print(json.dumps(batch.to_dict(), indent=2, default=str))
    return 0 if batch.success else 1


async def cmd_classify(config: dict, args: argparse.Namespace) -> int:
    """Classify pending articles."""
    from newsmon.pipeline import run_classification

    summary = await run_classification(config, limit=args.limit)
    print(json.dumps(summary, indent=2))
    return 0 if not summary.get("error") else 1


def cmd_resolve_entities(config: dict, args: argparse.Namespace) -> int:
    """Link entity mentions of classified articles."""
    from newsmon.pipeline import run_entity_resolution

    result = run_entity_resolution(config, limit=args.limit)
    print(
        f"Articles: {result.articles_processed}, new entities: {result.entities_created}, "
        f"new links: {result.links_created}, errors: {len(result.errors)}"
    )
    for error in result.errors:
        print(f"  {error}")
    return 0 if not result.errors else 1


def cmd_stats(config: dict, args: argparse.Namespace) -> int:
    """Show aggregate article and entity statistics."""
    conn = get_connection(get_db_path(config))
    try:
        stats = get_stats(conn)
    finally:
        conn.close()
    print(json.dumps(stats, indent=2, default=str))
    return 0


def _print_articles(page) -> None:
    for a in page.items:
        flags = ",".join(a.signals.active()) or "-"
        published = a.published_at.date().isoformat() if a.published_at else "?"
        print(f"{a.id:>6} {published} {a.status:<10} {flags:<30} {a.title[:70]}")
    print(f"Page {page.page}/{page.pages or 1} ({page.total} articles)")


def cmd_articles(config: dict, args: argparse.Namespace) -> int:
    """List stored articles, newest first."""
    conn = get_connection(get_db_path(config))
    try:
        if args.entity is not None:
            page = list_entity_articles(conn, args.entity, args.page, args.page_size)
        else:
            page = list_articles(
                conn,
                page=args.page,
                page_size=args.page_size,
                relevant=True if args.relevant else None,
                signal=args.signal,
                source=args.source,
                status=args.status,
            )
    finally:
        conn.close()
    _print_articles(page)
    return 0


def cmd_entities(config: dict, args: argparse.Namespace) -> int:
    """List entities by number of linked articles."""
    conn = get_connection(get_db_path(config))
    try:
        entities = list_entities(conn, limit=args.limit, entity_type=args.type)
    finally:
        conn.close()
    if not entities:
        print("No entities yet.")
        return 0
    print(f"{'ID':>6} {'Type':<12} {'Articles':>8}  Name")
    print("-" * 60)
    for e in entities:
        print(f"{e.id:>6} {e.entity_type:<12} {e.article_count:>8}  {e.entity_name}")
    return 0


def cmd_runs(config: dict, args: argparse.Namespace) -> int:
    """Show recent ingestion runs."""
    conn = get_connection(get_db_path(config))
    try:
        runs = get_recent_runs(conn, limit=args.limit)
    finally:
        conn.close()

    if not runs:
        print("No ingestion runs yet.")
        return 0

    print(f"{'Run':>4} {'Source':<8} {'Status':<10} {'Fetched':>7} {'New':>5} {'Dup':>5}  Started")
    print("-" * 70)
    for r in runs:
        print(
            f"{r['id']:>4} {r['source_api']:<8} {r['status']:<10} "
            f"{r['articles_fetched']:>7} {r['articles_new']:>5} "
            f"{r['articles_duplicate']:>5}  {r['started_at']}"
        )
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="python -m newsmon", description=__doc__)
    parser.add_argument("--config", help="Config file (default: $CONFIG_PATH or config.yaml)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("init-db", help=cmd_init_db.__doc__)
    p.set_defaults(handler=cmd_init_db)

    p = sub.add_parser("ingest", help=cmd_ingest.__doc__)
    p.add_argument("sources", nargs="*", help="Source names (default: all enabled)")
    p.add_argument("--lookback-hours", type=int)
    p.add_argument("--triggered-by", choices=["manual", "scheduled"], default="manual")
    p.add_argument("--json", action="store_true", help="Also print the batch result as JSON")
    p.set_defaults(handler=cmd_ingest)

    p = sub.add_parser("classify", help=cmd_classify.__doc__)
    p.add_argument("--limit", type=int)
    p.set_defaults(handler=cmd_classify)

    p = sub.add_parser("resolve-entities", help=cmd_resolve_entities.__doc__)
    p.add_argument("--limit", type=int)
    p.set_defaults(handler=cmd_resolve_entities)

    p = sub.add_parser("stats", help=cmd_stats.__doc__)
    p.set_defaults(handler=cmd_stats)

    p = sub.add_parser("articles", help=cmd_articles.__doc__)
    p.add_argument("--page", type=int, default=1)
    p.add_argument("--page-size", type=int, default=20)
    p.add_argument("--relevant", action="store_true")
    p.add_argument("--signal", choices=Signals.names())
    p.add_argument("--source")
    p.add_argument("--status", choices=["pending", "classified", "failed"])
    p.add_argument("--entity", type=int, help="Only articles linked to this entity ID")
    p.set_defaults(handler=cmd_articles)

    p = sub.add_parser("entities", help=cmd_entities.__doc__)
    p.add_argument("--limit", type=int, default=20)
    p.add_argument("--type", choices=["ORG", "PERSON", "GPE", "RO_PROVIDER"])
    p.set_defaults(handler=cmd_entities)

    p = sub.add_parser("runs", help=cmd_runs.__doc__)
    p.add_argument("--limit", type=int, default=10)
    p.set_defaults(handler=cmd_runs)

    return parser


def main(argv: list[str] | None = None) -> None:
    args = build_parser().parse_args(argv)
    config = load_config(args.config)
    setup_logging(config, verbose=args.verbose)

    handler = args.handler
    if inspect.iscoroutinefunction(handler):
        code = asyncio.run(handler(config, args))
    else:
        code = handler(config, args)
    sys.exit(code)


if __name__ == "__main__":
    main()
