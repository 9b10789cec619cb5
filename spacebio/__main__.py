"""CLI entrypoint: python -m spacebio {ask|index|suggest|scrape}."""

from __future__ import annotations

import argparse
import asyncio
import dataclasses
import json
import logging
import logging.handlers
import os
import sys
from pathlib import Path

from spacebio.config import get_log_path, load_config
from spacebio.errors import SpaceBioError


def setup_logging(config: dict, verbose: bool = False) -> None:
    """Configure logging with console + rotating file output."""
    root = logging.getLogger()
    root.setLevel(logging.DEBUG if verbose else logging.INFO)

    fmt = logging.Formatter(
        "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    # Console goes to stderr so JSON on stdout stays clean
    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(fmt)
    root.addHandler(console)

    # File handler (rotate at 5MB, keep 3 backups)
    log_file = Path(get_log_path(config))
    log_file.parent.mkdir(parents=True, exist_ok=True)
    file_handler = logging.handlers.RotatingFileHandler(
        str(log_file), maxBytes=5 * 1024 * 1024, backupCount=3,
    )
    file_handler.setFormatter(fmt)
    root.addHandler(file_handler)

    # Quiet noisy libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("trafilatura").setLevel(logging.WARNING)


def _dump(obj) -> None:
    if dataclasses.is_dataclass(obj):
        obj = dataclasses.asdict(obj)
    elif isinstance(obj, list):
        obj = [dataclasses.asdict(o) if dataclasses.is_dataclass(o) else o for o in obj]
    print(json.dumps(obj, ensure_ascii=False, indent=2, default=str))


async def cmd_ask(config: dict, args: argparse.Namespace) -> None:
    """Run one chat turn and print the result as JSON."""
    from spacebio.pipeline import ChatPipeline

    pipeline = ChatPipeline(config)
    result = await pipeline.answer(
        args.question, summarize=False if args.list else None,
    )
    _dump(result)


async def cmd_index(config: dict, args: argparse.Namespace) -> None:
    """Load the article index and show its size."""
    from spacebio.ingest.index import ArticleIndex

    articles = await ArticleIndex.from_config(config).load()
    print(f"{len(articles)} articles in the index")
    for article in articles[:args.head]:
        print(f"  - {article.title[:90]}\n    {article.link}")


async def cmd_suggest(config: dict, args: argparse.Namespace) -> None:
    """Print a random sample of articles (UI previews)."""
    from spacebio.ingest.index import ArticleIndex, sample

    articles = await ArticleIndex.from_config(config).load()
    _dump(sample(articles, args.n))


async def cmd_scrape(config: dict, args: argparse.Namespace) -> None:
    """Run the content extractor on a single page."""
    from spacebio.config import get_scrape_config
    from spacebio.ingest.scraper import ContentExtractor

    extractor = ContentExtractor.from_config(config)
    if args.html:
        cfg = get_scrape_config(config)
        html = await extractor.extract_structured_html(
            args.url, node_limit=cfg["node_limit"], figure_limit=cfg["figure_limit"],
        )
        print(html or "(no structured content)")
    else:
        _dump(await extractor.extract_text(args.url))


COMMANDS = {
    "ask": cmd_ask,
    "index": cmd_index,
    "suggest": cmd_suggest,
    "scrape": cmd_scrape,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="python -m spacebio",
        description="Space-biology publication assistant",
    )
    parser.add_argument(
        "--config", default=None,
        help="Config file path (default: config.yaml or CONFIG_PATH env)",
    )
    parser.add_argument("-v", "--verbose", action="store_true")
    sub = parser.add_subparsers(dest="command", required=True)

    ask = sub.add_parser("ask", help="Answer a question")
    ask.add_argument("question")
    ask.add_argument(
        "--list", action="store_true",
        help="Only list matching articles (no scraping or fusion)",
    )

    index = sub.add_parser("index", help="Load the article index")
    index.add_argument("--head", type=int, default=5)

    suggest = sub.add_parser("suggest", help="Random article suggestions")
    suggest.add_argument("-n", type=int, default=3)

    scrape = sub.add_parser("scrape", help="Extract one article page")
    scrape.add_argument("url")
    scrape.add_argument("--html", action="store_true", help="Structured HTML mode")
    return parser


def main(argv: list[str] | None = None) -> None:
    args = build_parser().parse_args(argv)
    config_path = args.config or os.environ.get("CONFIG_PATH", "config.yaml")

    try:
        config = load_config(config_path)
        setup_logging(config, verbose=args.verbose)
        asyncio.run(COMMANDS[args.command](config, args))
    except SpaceBioError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
