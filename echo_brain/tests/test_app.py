import argparse
import tempfile
from dataclasses import replace

from fastapi.testclient import TestClient

from echo_brain.app import api, cli
from echo_brain.app.errors import describe_error
from echo_brain.app.settings import AppSettings
from echo_brain.domain.errors import (
    ContentTooLargeError,
    EmbeddingServiceError,
    EntitlementError,
    FetchError,
    InvalidQueryError,
    StorageError,
    UnsupportedSourceError,
)


def test_settings_from_env(monkeypatch):
    monkeypatch.setenv("EB_TOP_K", "4")
    monkeypatch.setenv("EB_MIN_SCORE", "oops")
    monkeypatch.setenv("EB_STORE", "SQLite")
    monkeypatch.setenv("EB_EMBEDDER", "word2vec")
    monkeypatch.setenv("EB_PLAN_OVERRIDES", "alice:pro, bob:Student_Pro, broken")
    s = AppSettings.from_env()

    assert s.brain.top_k == 4
    assert s.brain.min_score == 0.2
    assert s.backends.store_backend == "sqlite"
    assert s.backends.embedder_backend == "hash"
    assert s.plans.overrides == {"alice": "pro", "bob": "student_pro"}


def test_error_views():
    assert describe_error(EntitlementError("Memory limit of 50 exceeded", "MEMORY_LIMIT_EXCEEDED")).status == 403
    assert describe_error(UnsupportedSourceError("video")).status == 415
    assert describe_error(ContentTooLargeError(60_000, 50_000)).status == 413
    assert describe_error(InvalidQueryError("Query is empty")).status == 400
    assert describe_error(FetchError("boom", url="https://x.example")).status == 502
    assert describe_error(EmbeddingServiceError("down")).status == 503

    view = describe_error(StorageError("disk I/O error at /var/lib/..."))
    assert view.status == 500
    assert "/var/lib" not in view.message


def test_api_ingest_query_and_errors(monkeypatch):
    with tempfile.TemporaryDirectory() as d:
        s = AppSettings()
        monkeypatch.setattr(api, "settings", replace(s, backends=replace(s.backends, data_dir=d)))
        client = TestClient(api.app)

        r = client.post("/memories", json={"user_id": "u1", "content": "the spare key is under the flowerpot"})
        assert r.status_code == 200
        mem = r.json()
        assert mem["source_type"] == "note"

        r = client.post("/query", json={"user_id": "u1", "query": "where is the spare key"})
        assert r.status_code == 200
        assert r.json()["cited_memory_ids"] == [mem["id"]]

        r = client.get("/memories/u1")
        assert [m["id"] for m in r.json()] == [mem["id"]]

        r = client.post("/query", json={"user_id": "u1", "query": "  "})
        assert r.status_code == 400
        assert r.json()["detail"]["kind"] == "invalid_input"


def _client(monkeypatch, d, **plans):
    s = AppSettings()
    s = replace(s, backends=replace(s.backends, data_dir=d), plans=replace(s.plans, **plans))
    monkeypatch.setattr(api, "settings", s)
    return TestClient(api.app)


def test_api_json_pdf_is_refused_without_touching_files(monkeypatch):
    with tempfile.TemporaryDirectory() as d:
        client = _client(monkeypatch, d)

        r = client.post("/memories", json={"user_id": "u1", "content": "/etc/passwd", "source_type": "pdf"})
        assert r.status_code == 400
        assert r.json()["detail"]["kind"] == "invalid_input"
        assert client.get("/memories/u1").json() == []


def test_api_confidence_detail_follows_tier(monkeypatch):
    with tempfile.TemporaryDirectory() as d:
        client = _client(monkeypatch, d, overrides={"paid": "pro"})
        for uid in ("free1", "paid"):
            r = client.post("/memories", json={"user_id": uid, "content": "the spare key is under the flowerpot"})
            assert r.status_code == 200

        free = client.post("/query", json={"user_id": "free1", "query": "where is the spare key"}).json()
        assert "confidence" not in free
        assert free["citations"] and all("score" not in c for c in free["citations"])
        assert [s["label"] for s in free["suggested_actions"]][0] == "Ask follow-up"

        paid = client.post("/query", json={"user_id": "paid", "query": "where is the spare key"}).json()
        assert 0.0 < paid["confidence"] <= 1.0
        assert all("score" in c for c in paid["citations"])


def test_api_timeline(monkeypatch):
    with tempfile.TemporaryDirectory() as d:
        client = _client(monkeypatch, d)
        first = client.post("/memories", json={"user_id": "u1", "content": "started learning pottery glazes"}).json()
        client.post("/memories", json={"user_id": "u1", "content": "pottery glazes need a second firing"})

        entries = client.get("/timeline/u1").json()
        assert [e["role"] for e in entries] == ["first_encounter", "refinement"]
        assert first["id"] in {e["memory_id"] for e in entries}

        r = client.post("/query", json={"user_id": "u1", "query": "pottery glazes", "timeline": True})
        assert r.status_code == 200
        assert len(r.json()["timeline"]) == 2

        r = client.get("/timeline/u1", params={"limit": 1})
        assert len(r.json()) == 1


def test_cli_url_only_describes_web_sources():
    args = argparse.Namespace(title=None, author=None, url="https://y.example")

    assert cli._options_for("note", "just a thought", args).source_url is None
    assert cli._options_for("pdf", "paper.pdf", args).source_url is None
    assert cli._options_for("web", "https://y.example", args).source_url == "https://y.example"
