"""HTTP entrypoint exposing the aggregation pipeline (Render/Cloud Run friendly)."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

from flask import Flask, jsonify, request

from leadscout.core.browser import RenderingSessionFailure
from leadscout.core.config import Settings, get_settings
from leadscout.core.pipeline import AggregationPipeline, PipelineResult, TotalExtractionFailure
from leadscout.etl.transform import to_output_rows

# ---------- Logging ----------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s - %(message)s",
)
logger = logging.getLogger(__name__)

# ---------- App ----------
app = Flask(__name__)

# ---------- Routes ----------


@app.get("/")
def root() -> Any:
    """Simple root to avoid 404 on GET /"""
    return "ok", 200


@app.get("/health")
def healthcheck() -> Any:
    """Liveness only; never touches the browser or the pipeline."""
    return jsonify({"status": "OK"}), 200


@app.get("/scrape")
def scrape() -> Any:
    """
    Run the pipeline synchronously for one query.
    Required query param: query. Optional: city.
    """
    query = (request.args.get("query") or "").strip()
    if not query:
        return jsonify({"error": "Missing query parameter ?query="}), 400
    city = (request.args.get("city") or "").strip() or None

    settings = get_settings()
    try:
        result = _run_pipeline(settings, query, city)
    except RenderingSessionFailure as exc:
        logger.error("Rendering session failed for query=%r: %s", query, exc)
        return jsonify({"error": "Internal server error during scraping"}), 500
    except TotalExtractionFailure as exc:
        logger.error("All sources failed for query=%r: %s", query, exc)
        return jsonify({"error": "All sources failed during scraping"}), 500

    rows = to_output_rows(result.records)
    if settings.response_envelope == "array":
        return jsonify(rows), 200
    return jsonify({"count": len(rows), "results": rows}), 200


# ---------- Internals ----------


def _run_pipeline(settings: Settings, query: str, city: Optional[str]) -> PipelineResult:
    pipeline = AggregationPipeline(settings)
    return asyncio.run(pipeline.run(query, city))


def main() -> None:
    settings = get_settings()
    logger.info("[BOOT] Binding on %s:%d", settings.host, settings.port)
    app.run(host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
