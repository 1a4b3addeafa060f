"""CLI job: aggregate listings for one query and write them to a JSON file."""

import argparse
import asyncio
import dataclasses
import json
import logging
from pathlib import Path
from typing import Callable, List, Optional

from leadscout.core.browser import RenderingSessionFailure
from leadscout.core.config import ConfigError, Settings, get_settings, parse_sources
from leadscout.core.pipeline import AggregationPipeline, PipelineResult, TotalExtractionFailure
from leadscout.etl.transform import to_output_rows

logger = logging.getLogger(__name__)


def write_results(result: PipelineResult, output_path: str) -> Path:
    """Overwrite ``output_path`` with the run's records as a JSON array."""
    path = Path(output_path)
    if path.parent and not path.parent.exists():
        path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as fh:
        json.dump(to_output_rows(result.records), fh, ensure_ascii=False, indent=2)
    return path


def run_query_job(query: str, *, city: Optional[str], settings: Settings) -> PipelineResult:
    query = (query or "").strip()
    if not query:
        raise ValueError("Query is empty")

    pipeline = AggregationPipeline(settings)
    result = asyncio.run(pipeline.run(query, city))

    path = write_results(result, settings.output_path)
    logger.info("Scraping complete. Saved %d records to %s", result.count, path)
    if result.degraded:
        logger.warning("Every source came back empty for query=%r", query)
    return result


def build_parser(settings: Settings) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Aggregate business listings for a query")
    parser.add_argument("query", nargs="?", help="What to search, e.g. 'restaurants in Vernon'")
    parser.add_argument("--city", dest="city", help="City override when the query has no 'in <city>' part")
    parser.add_argument("--output", dest="output_path", default=settings.output_path, help="Result file path")
    parser.add_argument(
        "--max-results",
        dest="max_results",
        type=int,
        default=settings.max_results,
        help="Maximum number of results per source",
    )
    parser.add_argument("--sources", dest="sources", help="Comma separated source priority list")
    parser.add_argument(
        "--parallel",
        dest="parallel_sources",
        action="store_true",
        default=settings.parallel_sources,
        help="Run sources concurrently",
    )
    parser.add_argument(
        "--fallback-limit",
        dest="fallback_limit",
        type=int,
        default=settings.fallback_limit,
        help="Cap on records sent to the web-search fallback",
    )
    return parser


def apply_overrides(settings: Settings, args: argparse.Namespace) -> Settings:
    overrides = {
        "output_path": args.output_path,
        "max_results": args.max_results,
        "parallel_sources": args.parallel_sources,
        "fallback_limit": args.fallback_limit,
    }
    if args.sources:
        overrides["sources"] = parse_sources(args.sources)
    return dataclasses.replace(settings, **overrides)


def main(argv: Optional[List[str]] = None, prompt: Callable[[str], str] = input) -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s - %(message)s")
    try:
        settings = get_settings()
    except ConfigError as exc:
        logger.error("Configuration error: %s", exc)
        raise SystemExit(2) from exc

    args = build_parser(settings).parse_args(argv)
    settings = apply_overrides(settings, args)

    query = args.query or prompt("Enter what to search (e.g. restaurants in Vernon): ")
    try:
        run_query_job(query, city=args.city, settings=settings)
    except ValueError as exc:
        logger.error("%s", exc)
        raise SystemExit(2) from exc
    except (RenderingSessionFailure, TotalExtractionFailure) as exc:
        logger.error("Error during scraping: %s", exc)
        raise SystemExit(1) from exc


if __name__ == "__main__":
    main()
