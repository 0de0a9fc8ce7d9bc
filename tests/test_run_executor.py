from __future__ import annotations

import asyncio
import json

from jobscout.config.settings import Settings, _env_bool, settings
from jobscout.prefect_run import _parse_cli_args
from jobscout.runs import executor, run_manager

from fakes import FakeSource, ScriptedOracle


def test_settings_defaults_present():
    assert isinstance(settings, Settings)
    assert settings.max_concurrent_requests >= 1
    assert settings.max_concurrent_evaluations >= 1
    assert settings.cache_ttl_sec == int(settings.cache_ttl_hours * 3600)
    assert settings.report_filename.endswith(".html")


def test_env_bool_reads_truthy_values(monkeypatch):
    monkeypatch.setenv("JOBSCOUT_TEST_FLAG", "yes")
    assert _env_bool("JOBSCOUT_TEST_FLAG", default=False) is True
    monkeypatch.setenv("JOBSCOUT_TEST_FLAG", "0")
    assert _env_bool("JOBSCOUT_TEST_FLAG", default=True) is False
    monkeypatch.delenv("JOBSCOUT_TEST_FLAG")
    assert _env_bool("JOBSCOUT_TEST_FLAG", default=True) is True


def test_cli_run_flags():
    args = _parse_cli_args(["run", "--job-id", "1", "--job-id", "2", "--no-send-email", "--deadline-sec", "90"])
    assert args.command == "run"
    assert args.job_ids == ["1", "2"]
    assert args.send_email is False
    assert args.deadline_sec == 90.0

    args = _parse_cli_args(["run", "--field", "Data Engineer", "--max-pages", "3"])
    assert args.field == "Data Engineer"
    assert args.max_pages == 3
    assert args.send_email is None
    assert args.job_ids == []


def test_collect_listings_uses_explicit_ids(test_settings):
    listings = asyncio.run(executor.collect_listings(test_settings, field="x", max_pages=1, job_ids=["7", " ", "8"]))
    assert [ref.id for ref in listings] == ["7", "8"]


def test_execute_run_writes_report_and_status(test_settings, monkeypatch):
    monkeypatch.setattr(run_manager, "settings", test_settings)
    source = FakeSource(titles={"1": "Alpha", "2": "Beta"})
    oracle = ScriptedOracle({"Alpha": 40, "Beta": 75})
    real_build = executor.build_pipeline

    def build_with_fakes(cfg, *, profile_text, cache):
        return real_build(cfg, profile_text=profile_text, cache=cache, source=source, oracle=oracle)

    monkeypatch.setattr(executor, "build_pipeline", build_with_fakes)

    run_id = run_manager.create_run_dir()
    status = executor.execute_run(run_id, profile_text="resume", job_ids=["1", "2"], cfg=test_settings)

    assert status["status"] == "completed"
    assert status["error"] is None
    assert status["summary"]["records"] == 2
    assert status["summary"]["top_score"] == 75
    assert run_manager.report_path(run_id).is_file()
    on_disk = run_manager.load_status(run_id)
    assert on_disk["status"] == "completed"
    assert on_disk["finished_at"]
    report = json.loads((run_manager.get_run_dir(run_id) / "report.json").read_text(encoding="utf-8"))
    assert [r["listing_id"] for r in report["report"]["records"]] == ["2", "1"]
    assert run_manager.log_path(run_id).is_file()


def test_execute_run_records_deadline_failure(test_settings, monkeypatch):
    monkeypatch.setattr(run_manager, "settings", test_settings)

    async def slow_evaluate(run_dir, **kwargs):
        raise TimeoutError()

    monkeypatch.setattr(executor, "evaluate", slow_evaluate)

    run_id = run_manager.create_run_dir()
    status = executor.execute_run(run_id, profile_text="resume", job_ids=["1"], deadline_sec=1, cfg=test_settings)

    assert status["status"] == "failed"
    assert "deadline" in status["error"]
    assert run_manager.load_status(run_id)["status"] == "failed"


def test_load_status_rejects_path_like_ids(test_settings, monkeypatch):
    monkeypatch.setattr(run_manager, "settings", test_settings)
    assert run_manager.load_status("../etc") is None
    assert run_manager.load_status("..") is None
