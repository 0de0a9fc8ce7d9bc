from __future__ import annotations

from fastapi.testclient import TestClient

from jobscout import fastapi_run
from jobscout.pipeline.errors import SetupError
from jobscout.runs import run_manager


def _make_client(test_settings, monkeypatch, *, preflight_error=None):
    monkeypatch.setattr(fastapi_run, "settings", test_settings)
    monkeypatch.setattr(run_manager, "settings", test_settings)

    async def fake_preflight(cfg, *, send_email=False):
        if preflight_error:
            raise preflight_error
        return "profile text"

    scheduled = []

    def fake_execute_run(run_id, **kwargs):
        scheduled.append((run_id, kwargs))
        path = run_manager.report_path(run_id)
        path.write_text("<html><h1>Job Fit Evaluations</h1></html>", encoding="utf-8")
        status = run_manager.new_status(run_id, {"job_ids": kwargs["job_ids"]})
        status["report_path"] = str(path)
        run_manager.write_status(run_id, run_manager.finish_status(status))
        return status

    monkeypatch.setattr(fastapi_run, "run_preflight", fake_preflight)
    monkeypatch.setattr(fastapi_run, "execute_run", fake_execute_run)
    return TestClient(fastapi_run.app), scheduled


def test_health(test_settings, monkeypatch):
    client, _ = _make_client(test_settings, monkeypatch)
    res = client.get("/health")
    assert res.status_code == 200
    body = res.json()
    assert body["ok"] is True
    assert body["cache_backend"] == "memory"
    assert body["llm_provider"] == "ollama"


def test_start_run_schedules_background_work(test_settings, monkeypatch):
    client, scheduled = _make_client(test_settings, monkeypatch)

    res = client.post("/api/runs", json={"job_ids": ["111", " 222 ", ""], "deadline_sec": 600})
    assert res.status_code == 202
    body = res.json()
    run_id = body["run_id"]
    assert body["status"] == "running"
    assert body["params"]["job_ids"] == ["111", "222"]

    assert len(scheduled) == 1
    assert scheduled[0][0] == run_id
    assert scheduled[0][1]["profile_text"] == "profile text"
    assert scheduled[0][1]["deadline_sec"] == 600

    status = client.get(f"/api/runs/{run_id}")
    assert status.status_code == 200
    assert status.json()["status"] == "completed"

    report = client.get(f"/api/runs/{run_id}/report")
    assert report.status_code == 200
    assert "Job Fit Evaluations" in report.text


def test_start_run_rejects_setup_errors(test_settings, monkeypatch):
    err = SetupError("no key", data={"problems": ["no ScrapingDog API key"]})
    client, scheduled = _make_client(test_settings, monkeypatch, preflight_error=err)

    res = client.post("/api/runs", json={"field": "Data Engineer"})

    assert res.status_code == 400
    assert res.json()["detail"]["problems"] == ["no ScrapingDog API key"]
    assert scheduled == []


def test_start_run_validates_body(test_settings, monkeypatch):
    client, _ = _make_client(test_settings, monkeypatch)
    assert client.post("/api/runs", json={"job_ids": ["  "]}).status_code == 422
    assert client.post("/api/runs", json={"max_pages": 0}).status_code == 422
    assert client.post("/api/runs", json={"unknown": 1}).status_code == 422


def test_unknown_run_is_404(test_settings, monkeypatch):
    client, _ = _make_client(test_settings, monkeypatch)
    assert client.get("/api/runs/nope").status_code == 404
    assert client.get("/api/runs/nope/report").status_code == 404
