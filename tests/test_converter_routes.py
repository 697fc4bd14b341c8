import json
import threading
import time

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError

from code_converter.deps import get_db
from code_converter.settings import settings
from tests.utils import chat_completion, install_fake_provider, provider_error


def _ok_provider(request: httpx.Request) -> httpx.Response:
    return chat_completion("User Function Add(a, b)\nReturn a + b", total_tokens=57)


def test_banner(app_with_inmemory_db):
    app, _ = app_with_inmemory_db

    with TestClient(app) as client:
        response = client.get("/")

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["data"]["status"] == "online"
    assert body["data"]["version"] == settings.version


def test_convert_then_browse_and_delete(app_with_inmemory_db):
    app, _ = app_with_inmemory_db
    install_fake_provider(app, _ok_provider)

    with TestClient(app) as client:
        response = client.post("/api/converter", json={"sourceText": "function add(a,b){return a+b}"})
        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["timestamp"].endswith("Z")
        data = body["data"]
        assert data["result"].startswith("User Function Add")
        assert data["metadata"] == {
            "model": "gpt-4-0613",
            "tokens": 57,
            "elapsedMs": data["metadata"]["elapsedMs"],
            "inputLength": len("function add(a,b){return a+b}"),
        }
        record_id = data["recordId"]
        assert isinstance(record_id, int)

        app.state.history_writer.flush()

        history = client.get("/api/historico").json()["data"]
        assert history["pagination"] == {"page": 1, "limit": 10, "total": 1, "pages": 1}
        assert history["records"][0]["id"] == record_id
        assert history["records"][0]["sourceText"] == "function add(a,b){return a+b}"

        fetched = client.get(f"/api/conversao/{record_id}")
        assert fetched.status_code == 200
        record = fetched.json()["data"]
        assert record["tokens"] == 57
        assert record["createdAt"].endswith("Z")

        stats = client.get("/api/stats").json()["data"]
        assert stats["totalConversions"] == 1
        assert stats["totalTokens"] == 57
        assert stats["recentConversions"][0]["id"] == record_id

        deleted = client.delete(f"/api/conversao/{record_id}")
        assert deleted.status_code == 200
        assert deleted.json()["data"] == {"message": "Conversion deleted successfully"}

        missing = client.get(f"/api/conversao/{record_id}")
        assert missing.status_code == 404
        assert missing.json()["errorCode"] == "not_found"
        assert missing.json()["error"] == "Conversion not found"

        assert client.delete(f"/api/conversao/{record_id}").status_code == 404


def test_convert_without_history_has_no_record_id(app_with_inmemory_db):
    app, _ = app_with_inmemory_db
    install_fake_provider(app, _ok_provider)

    with TestClient(app) as client:
        response = client.post(
            "/api/converter", json={"codigoTs": "const a = 1;", "salvarHistorico": False}
        )
        app.state.history_writer.flush()
        total = client.get("/api/historico").json()["data"]["pagination"]["total"]

    assert response.status_code == 200
    assert "recordId" not in response.json()["data"]
    assert total == 0


def test_missing_usage_omits_tokens(app_with_inmemory_db):
    app, _ = app_with_inmemory_db
    install_fake_provider(app, lambda request: chat_completion("ok", total_tokens=None))

    with TestClient(app) as client:
        response = client.post("/api/converter", json={"sourceText": "const a = 1;"})

    assert response.status_code == 200
    assert "tokens" not in response.json()["data"]["metadata"]


def test_history_write_failure_does_not_fail_conversion(app_with_inmemory_db, caplog):
    app, _ = app_with_inmemory_db
    install_fake_provider(app, _ok_provider)

    def broken_session():
        raise RuntimeError("database is gone")

    with TestClient(app) as client:
        app.state.history_writer.session_factory = broken_session
        response = client.post("/api/converter", json={"sourceText": "const a = 1;"})
        app.state.history_writer.flush()

    assert response.status_code == 200
    assert response.json()["success"] is True
    assert "failed to save conversion" in caplog.text


@pytest.mark.parametrize(
    ("body", "message"),
    [
        ({}, "sourceText is required"),
        ({"sourceText": "   "}, "sourceText is required"),
    ],
)
def test_invalid_payload_is_400(app_with_inmemory_db, body, message):
    app, _ = app_with_inmemory_db
    calls: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return chat_completion("unused")

    install_fake_provider(app, handler)

    with TestClient(app) as client:
        response = client.post("/api/converter", json=body)

    assert response.status_code == 400
    assert response.json()["error"] == message
    assert calls == []


def test_too_long_payload_is_400(app_with_inmemory_db, monkeypatch):
    app, _ = app_with_inmemory_db
    install_fake_provider(app, _ok_provider)
    monkeypatch.setattr(settings, "max_code_length", 10)

    with TestClient(app) as client:
        at_limit = client.post("/api/converter", json={"sourceText": "x" * 10})
        over = client.post("/api/converter", json={"sourceText": "x" * 11})

    assert at_limit.status_code == 200
    assert over.status_code == 400
    assert over.json()["error"] == "Source text is too long. Maximum of 10 characters."


def test_malformed_json_is_400(app_with_inmemory_db):
    app, _ = app_with_inmemory_db
    install_fake_provider(app, _ok_provider)

    with TestClient(app) as client:
        response = client.post(
            "/api/converter",
            content=b"{not json",
            headers={"Content-Type": "application/json"},
        )

    assert response.status_code == 400
    assert response.json()["errorCode"] == "validation_error"


def test_provider_failure_is_500_with_cause(app_with_inmemory_db):
    app, _ = app_with_inmemory_db
    install_fake_provider(
        app, lambda request: provider_error(429, code="insufficient_quota", message="quota")
    )

    with TestClient(app) as client:
        response = client.post("/api/converter", json={"sourceText": "const a = 1;"})
        app.state.history_writer.flush()
        total = client.get("/api/historico").json()["data"]["pagination"]["total"]

    assert response.status_code == 500
    body = response.json()
    assert body["success"] is False
    assert body["errorCode"] == "provider_quota_exceeded"
    assert "quota" in body["error"].lower()
    assert total == 0


def test_history_pagination_pages_is_ceiling(app_with_inmemory_db):
    app, _ = app_with_inmemory_db
    install_fake_provider(app, _ok_provider)

    with TestClient(app) as client:
        for i in range(12):
            client.post("/api/converter", json={"sourceText": f"const v{i} = {i};"})
        app.state.history_writer.flush()

        first = client.get("/api/historico", params={"page": 1, "limit": 5}).json()["data"]
        last = client.get("/api/historico", params={"page": 3, "limit": 5}).json()["data"]

    assert first["pagination"] == {"page": 1, "limit": 5, "total": 12, "pages": 3}
    assert first["records"][0]["sourceText"] == "const v11 = 11;"
    assert [r["sourceText"] for r in last["records"]] == ["const v1 = 1;", "const v0 = 0;"]


def test_empty_stats_are_zero(app_with_inmemory_db):
    app, _ = app_with_inmemory_db

    with TestClient(app) as client:
        response = client.get("/api/stats")

    assert response.status_code == 200
    assert response.json()["data"] == {
        "totalConversions": 0,
        "totalTokens": 0,
        "averageLatency": 0,
        "recentConversions": [],
    }


@pytest.mark.parametrize("path", ["/api/conversao/abc", "/api/historico?page=0"])
def test_bad_parameters_are_400(app_with_inmemory_db, path):
    app, _ = app_with_inmemory_db

    with TestClient(app) as client:
        response = client.get(path)

    assert response.status_code == 400
    assert response.json()["errorCode"] == "validation_error"


def test_unknown_route_is_404_envelope(app_with_inmemory_db):
    app, _ = app_with_inmemory_db

    with TestClient(app) as client:
        response = client.get("/api/nope")

    assert response.status_code == 404
    body = response.json()
    assert body["success"] is False
    assert body["path"] == "/api/nope"


def test_rate_limit_applies_to_api(monkeypatch):
    from code_converter.routes import create_app
    from tests.utils import install_inmemory_db

    monkeypatch.setattr(settings, "max_requests_per_minute", 2)
    app = create_app()
    install_inmemory_db(app)

    with TestClient(app) as client:
        statuses = [client.get("/api/stats").status_code for _ in range(3)]
        denied = client.get("/api/stats")

    assert statuses == [200, 200, 429]
    assert denied.json()["errorCode"] == "rate_limited"
    assert json.loads(denied.content)["success"] is False
    assert "Retry-After" in denied.headers


def test_record_is_readable_and_deletable_before_it_is_written(app_with_inmemory_db):
    app, session_factory = app_with_inmemory_db
    install_fake_provider(app, _ok_provider)

    def slow_session():
        time.sleep(0.3)
        return session_factory()

    with TestClient(app) as client:
        app.state.history_writer.session_factory = slow_session
        record_id = client.post(
            "/api/converter", json={"sourceText": "const a = 1;"}
        ).json()["data"]["recordId"]

        fetched = client.get(f"/api/conversao/{record_id}")
        assert fetched.status_code == 200
        assert fetched.json()["data"]["id"] == record_id
        assert fetched.json()["data"]["sourceText"] == "const a = 1;"

        assert client.delete(f"/api/conversao/{record_id}").status_code == 200

        app.state.history_writer.flush()
        assert client.get(f"/api/conversao/{record_id}").status_code == 404
        assert client.get("/api/historico").json()["data"]["pagination"]["total"] == 0


def test_delete_of_queued_record_cancels_its_write(app_with_inmemory_db):
    app, session_factory = app_with_inmemory_db
    install_fake_provider(app, _ok_provider)
    release = threading.Event()

    def gated_session():
        release.wait(timeout=5)
        return session_factory()

    with TestClient(app) as client:
        app.state.history_writer.session_factory = gated_session
        kept = client.post("/api/converter", json={"sourceText": "const a = 1;"}).json()
        dropped = client.post("/api/converter", json={"sourceText": "const b = 2;"}).json()
        kept_id = kept["data"]["recordId"]
        dropped_id = dropped["data"]["recordId"]

        assert client.get(f"/api/conversao/{dropped_id}").status_code == 200
        assert client.delete(f"/api/conversao/{dropped_id}").status_code == 200
        assert client.get(f"/api/conversao/{dropped_id}").status_code == 404

        release.set()
        app.state.history_writer.flush()

        assert client.get(f"/api/conversao/{dropped_id}").status_code == 404
        assert client.get(f"/api/conversao/{kept_id}").status_code == 200
        history = client.get("/api/historico").json()["data"]
        assert [r["id"] for r in history["records"]] == [kept_id]


class _UnreachableSession:
    def _fail(self, *args, **kwargs):
        raise OperationalError("SELECT", {}, Exception("disk I/O error"))

    execute = _fail
    get = _fail

    def rollback(self):
        pass

    def close(self):
        pass


@pytest.mark.parametrize("path", ["/api/historico", "/api/stats", "/api/conversao/1"])
def test_store_failure_on_read_is_500(app_with_inmemory_db, path):
    app, _ = app_with_inmemory_db

    def broken_db():
        yield _UnreachableSession()

    app.dependency_overrides[get_db] = broken_db

    with TestClient(app) as client:
        response = client.get(path)

    assert response.status_code == 500
    body = response.json()
    assert body["success"] is False
    assert body["errorCode"] == "persistence_error"


def test_store_failure_on_delete_is_500(app_with_inmemory_db):
    app, _ = app_with_inmemory_db

    def broken_db():
        yield _UnreachableSession()

    app.dependency_overrides[get_db] = broken_db

    with TestClient(app) as client:
        response = client.delete("/api/conversao/1")

    assert response.status_code == 500
    assert response.json()["errorCode"] == "persistence_error"


def test_default_db_dependency_yields_a_session():
    from sqlalchemy.orm import Session

    dependency = get_db()
    db = next(dependency)
    try:
        assert isinstance(db, Session)
    finally:
        dependency.close()
