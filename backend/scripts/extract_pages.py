#!/usr/bin/env python3
"""Vinotheque Extraction Runner.

Runs the extraction pipeline on a JSON file of already-extracted page text
and prints the scored product record.

Input file: either a list of pages or an object with a "pages" key:
    [{"page": 1, "text": "Château X ..."}, {"page": 2, "text": "..."}]

Usage:
    # Extract with the providers configured in .env
    python scripts/extract_pages.py sheet.json

    # Force a primary provider and skip the secondaries
    python scripts/extract_pages.py sheet.json --primary google --no-secondaries

    # Every provider at once, smaller chunks, write result to a file
    python scripts/extract_pages.py sheet.json --strategy parallel --max-chars 4000 -o out.json
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any

# Load .env before importing app modules
from dotenv import load_dotenv

_backend = Path(__file__).resolve().parent.parent
load_dotenv(_backend / ".env")

import structlog

structlog.configure(
    processors=[
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.dev.ConsoleRenderer(),
    ]
)

from vinotheque.core.config import settings
from vinotheque.modules.extraction.errors import (
    AllProvidersFailedError,
    ExtractionError,
    format_provider_failures,
)
from vinotheque.modules.extraction.schemas import PageBlock
from vinotheque.modules.extraction.service import extract_product_spec

logger = structlog.get_logger()


def load_pages(path: Path) -> list[PageBlock]:
    payload: Any = json.loads(path.read_text(encoding="utf-8"))
    if isinstance(payload, dict):
        payload = payload.get("pages", [])
    return [PageBlock.model_validate(p) for p in payload]


async def run(args: argparse.Namespace) -> int:
    overrides: dict[str, Any] = {}
    if args.primary:
        overrides["primary_provider"] = args.primary
    if args.strategy:
        overrides["provider_strategy"] = args.strategy
    if args.no_secondaries:
        overrides["run_secondaries_on_success"] = False
    config = settings.model_copy(update=overrides)

    pages = load_pages(args.input)
    logger.info("Loaded pages", file=str(args.input), pages=len(pages))

    try:
        outcome = await extract_product_spec(
            pages,
            config=config,
            max_chars_per_chunk=args.max_chars,
        )
    except AllProvidersFailedError as exc:
        print(format_provider_failures(exc.details), file=sys.stderr)
        return 1
    except ExtractionError as exc:
        print(f"{exc.code}: {exc}", file=sys.stderr)
        return 1

    result = json.dumps(outcome.model_dump(mode="json"), indent=2, ensure_ascii=False)
    if args.output:
        args.output.write_text(result, encoding="utf-8")
        logger.info("Result written", file=str(args.output), quality=outcome.quality_score)
    else:
        print(result)
    return 0 if outcome.acceptance.accepted else 2


def main() -> None:
    parser = argparse.ArgumentParser(description="Vinotheque technical-sheet extraction")
    parser.add_argument("input", type=Path,
                        help="JSON file with the document's pages")
    parser.add_argument("-o", "--output", type=Path, default=None,
                        help="Write the result here instead of stdout")
    parser.add_argument("--primary", type=str, default=None,
                        choices=["openai", "anthropic", "google"],
                        help="Override PRIMARY_PROVIDER")
    parser.add_argument("--strategy", type=str, default=None,
                        choices=["primary_first", "parallel"],
                        help="Override PROVIDER_STRATEGY")
    parser.add_argument("--no-secondaries", action="store_true",
                        help="Stop after the primary provider when it succeeds")
    parser.add_argument("--max-chars", type=int, default=None,
                        help="Chunk size in characters (default: CHUNK_SIZE)")
    args = parser.parse_args()

    sys.exit(asyncio.run(run(args)))


if __name__ == "__main__":
    main()
