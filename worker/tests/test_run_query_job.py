import argparse
import json

import pytest

from leadscout.core.browser import RenderingSessionFailure
from leadscout.core.config import Settings
from leadscout.core.pipeline import PipelineResult
from leadscout.jobs import run_query
from leadscout.models import BusinessRecord, Source


class DummyPipeline:
    instances = []

    def __init__(self, settings, records=None, error=None):
        self.settings = settings
        self.records = records if records is not None else []
        self.error = error
        self.calls = []
        DummyPipeline.instances.append(self)

    async def run(self, query, city=None):
        self.calls.append((query, city))
        if self.error:
            raise self.error
        return PipelineResult(query=query, city=city or "Vernon", records=list(self.records))


@pytest.fixture(autouse=True)
def reset_instances():
    DummyPipeline.instances = []
    yield


def patch_pipeline(monkeypatch, **kwargs):
    monkeypatch.setattr(run_query, "AggregationPipeline", lambda settings: DummyPipeline(settings, **kwargs))


def test_run_query_job_writes_json_array(monkeypatch, tmp_path):
    output = tmp_path / "results.json"
    output.write_text("stale", encoding="utf-8")
    records = [BusinessRecord(title="Cafe X", rank=1, source=Source.MAP_DIRECTORY, city="Vernon", phone="250-555-0000")]
    patch_pipeline(monkeypatch, records=records)

    result = run_query.run_query_job("cafes in Vernon", city=None, settings=Settings(output_path=str(output)))

    rows = json.loads(output.read_text(encoding="utf-8"))
    assert result.count == 1
    assert isinstance(rows, list)
    assert rows[0]["title"] == "Cafe X"
    assert rows[0]["phone"] == "250-555-0000"
    assert rows[0]["email"] == "N/A"


def test_run_query_job_writes_empty_array_for_degraded_run(monkeypatch, tmp_path):
    output = tmp_path / "out" / "results.json"
    patch_pipeline(monkeypatch)

    run_query.run_query_job("cafes in Vernon", city=None, settings=Settings(output_path=str(output)))

    assert json.loads(output.read_text(encoding="utf-8")) == []


def test_run_query_job_requires_query(monkeypatch, tmp_path):
    patch_pipeline(monkeypatch)
    with pytest.raises(ValueError):
        run_query.run_query_job("  ", city=None, settings=Settings(output_path=str(tmp_path / "r.json")))


def test_build_parser_defaults():
    parser = run_query.build_parser(Settings(max_results=7, output_path="leads.json"))
    args = parser.parse_args(["restaurants in Vernon"])

    assert isinstance(parser, argparse.ArgumentParser)
    assert args.query == "restaurants in Vernon"
    assert args.max_results == 7
    assert args.output_path == "leads.json"
    assert args.parallel_sources is False


def test_apply_overrides():
    parser = run_query.build_parser(Settings())
    args = parser.parse_args(["q", "--sources", "search,maps", "--fallback-limit", "3", "--parallel"])

    settings = run_query.apply_overrides(Settings(), args)

    assert settings.sources == ("search", "maps")
    assert settings.fallback_limit == 3
    assert settings.parallel_sources is True


def test_main_prompts_when_query_missing(monkeypatch, tmp_path):
    output = tmp_path / "results.json"
    monkeypatch.setattr(run_query, "get_settings", lambda: Settings(output_path=str(output)))
    patch_pipeline(monkeypatch)

    run_query.main(["--city", "Kelowna"], prompt=lambda message: "bakeries")

    assert DummyPipeline.instances[0].calls == [("bakeries", "Kelowna")]
    assert output.exists()


def test_main_exits_nonzero_on_session_failure(monkeypatch, tmp_path):
    monkeypatch.setattr(run_query, "get_settings", lambda: Settings(output_path=str(tmp_path / "r.json")))
    patch_pipeline(monkeypatch, error=RenderingSessionFailure("no chromium"))

    with pytest.raises(SystemExit) as excinfo:
        run_query.main(["restaurants in Vernon"])

    assert excinfo.value.code == 1
