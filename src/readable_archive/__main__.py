"""Command line entry point."""

import argparse
import sys
from pathlib import Path

import anyio
import structlog

from readable_archive.bookmarks import Bookmark, BookmarkState, MemoryStore, run_extraction_job
from readable_archive.bookmarks.jobs import standard_processors
from readable_archive.config import settings
from readable_archive.exceptions import ReadableArchiveError
from readable_archive.extract.extractor import Extractor
from readable_archive.extract.http import new_client
from readable_archive.extract.siteconfig import ConfigFolder, check_rules, resolve_config
from readable_archive.logging import configure_logging

logger = structlog.get_logger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="readable-archive",
        description="Extract and archive web pages",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    extract = sub.add_parser("extract", help="extract a URL and write its archive")
    extract.add_argument("url", help="URL to extract")
    extract.add_argument("--html", type=Path, help="HTML file to use instead of fetching the URL")
    extract.add_argument("--output", type=Path, help="data directory (default: settings)")

    rules = sub.add_parser("test-rules", help="run the site configuration tests of a URL host")
    rules.add_argument("url", help="URL whose host rules are tested")

    return parser


def cmd_extract(args: argparse.Namespace) -> int:
    config = settings
    if args.output:
        config = settings.model_copy(update={"data_directory": str(args.output)})

    html = args.html.read_bytes() if args.html else b""
    bookmark = Bookmark(url=args.url)
    run_extraction_job(bookmark, store=MemoryStore(), settings=config, html=html)

    print(bookmark.model_dump_json(indent=2, exclude={"text", "logs"}))
    return 0 if bookmark.state == BookmarkState.LOADED else 1


async def _test_rules(url: str) -> list[str]:
    folders = [ConfigFolder(path, name) for path, name in settings.get_config_folders()]
    networks = settings.get_denied_networks()
    config = resolve_config(url, folders)
    if not config.tests:
        logger.info("no_rule_tests", url=url, files=config.files)
        return []

    async with new_client(
        timeout=settings.request_timeout,
        denied_networks=networks,
        verify=settings.get_ssl_context(),
        user_agent=settings.user_agent,
    ) as client:

        async def fetch_text(test_url: str) -> str:
            ex = Extractor(
                test_url,
                client=client,
                processors=standard_processors(folders, networks, settings=settings),
            )
            result = await ex.run()
            return result.html.decode("utf-8")

        return await check_rules(config, fetch_text)


def cmd_test_rules(args: argparse.Namespace) -> int:
    failures = anyio.run(_test_rules, args.url)
    for failure in failures:
        print(failure)
    return 1 if failures else 0


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging()

    try:
        if args.command == "extract":
            return cmd_extract(args)
        return cmd_test_rules(args)
    except ReadableArchiveError as e:
        logger.error("command_failed", command=args.command, error=str(e))
        return 2


if __name__ == "__main__":
    sys.exit(main())
