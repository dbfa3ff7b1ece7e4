"""Command-line search against the Docsville backend.

Usage:
  python -m services.search --filter sourceSystem=genius --filter contentType=application/pdf
  python -m services.search --filter filename=report --created-from 2024-01-01 --offset 20
  python -m services.search --content "termination clause" --k 8

Filter values starting with '[' or '{' are parsed as JSON, so
``--filter 'contentType=["application/pdf","image/png"]'`` selects several
content types.
"""

import argparse
import asyncio
import json
import logging
import sys
from typing import Any, Optional, Sequence

from core.config.settings import get_settings
from core.errors import DocsvilleError
from core.models.search import SearchResponse
from services.search.filters import describe_filter
from services.search.session import create_session

logger = logging.getLogger(__name__)


def parse_filter_arg(raw: str) -> tuple[str, Any]:
    """Split ``key=value``; JSON lists/objects are decoded."""
    key, sep, value = raw.partition("=")
    if not sep or not key:
        raise argparse.ArgumentTypeError(f"expected key=value, got {raw!r}")
    value = value.strip()
    if value[:1] in ("[", "{"):
        try:
            return key, json.loads(value)
        except json.JSONDecodeError as e:
            raise argparse.ArgumentTypeError(f"invalid JSON for {key}: {e}")
    return key, value


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="python -m services.search", description=__doc__.splitlines()[0])
    ap.add_argument("--filter", dest="filters", action="append", type=parse_filter_arg, default=[],
                    help="facet as key=value (repeatable)")
    ap.add_argument("--created-from", help="ISO start date for createdAt")
    ap.add_argument("--created-to", help="ISO end date for createdAt")
    ap.add_argument("--offset", type=int, default=0, help="index of the first result")
    ap.add_argument("--count", type=int, help="page size (defaults to PAGE_SIZE)")
    ap.add_argument("--content", help="full-text content search instead of faceted search")
    ap.add_argument("--k", type=int, help="number of content matches")
    ap.add_argument("--json", action="store_true", help="print raw JSON instead of a table")
    ap.add_argument("--log-level", default=None, help="logging level (defaults to LOG_LEVEL)")
    return ap


def print_page(response: SearchResponse) -> None:
    p = response.pagination
    print(f"Page {p.current_page}/{p.total_pages} - {p.total} documents")
    for result in response.results:
        print(
            f"  {result.id:<14} {result.filename or '-':<40} "
            f"{result.content_type or '-':<28} {result.created_at or '-'}"
        )
    if p.has_more:
        print(f"  ... next page: --offset {p.next_offset}")


async def run(args: argparse.Namespace) -> int:
    settings = get_settings()
    if args.count:
        settings = settings.model_copy(update={"page_size": args.count})
    session = create_session(settings)
    try:
        if args.content:
            hits = await session.search_content(args.content, k=args.k or settings.content_search_k)
            if args.json:
                print(json.dumps([h.model_dump() for h in hits], indent=2))
            else:
                for hit in hits:
                    print(f"  {hit.score_percent:>5} {hit.document.file_name}")
            return 0

        for key, value in args.filters:
            session.set_filter(key, value)
        if args.created_from or args.created_to:
            session.set_range("createdAt", args.created_from, args.created_to)

        applied = ", ".join(f"{f.key}: {describe_filter(f)}" for f in session.filters)
        logger.info(f"Searching with {applied or 'no filters'}")
        response = await session.apply()
        if response is not None and args.offset:
            response = await session.go_to_offset(args.offset)

        if response is None:
            error = session.controller.error
            print(f"Search failed: {error.message if error else 'no response'}", file=sys.stderr)
            return 1
        if args.json:
            print(response.model_dump_json(by_alias=True, indent=2))
        else:
            print_page(response)
        return 0
    except DocsvilleError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return 1
    finally:
        await session.close()
        if session.content_backend is not None:
            await session.content_backend.close()


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=(args.log_level or get_settings().log_level).upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    return asyncio.run(run(args))


if __name__ == "__main__":
    sys.exit(main())
