from fastapi.testclient import TestClient


def test_unhandled_exception_returns_structured_error(app_with_inmemory_db):
    app, _ = app_with_inmemory_db

    @app.get("/__raise_unhandled_error")
    async def raise_error():
        raise RuntimeError("boom")

    with TestClient(app, raise_server_exceptions=False) as client:
        response = client.get("/__raise_unhandled_error")

    assert response.status_code == 500
    payload = response.json()
    assert payload["success"] is False
    assert payload["errorCode"] == "internal_error"
    assert payload["error"] == "Internal server error"
    assert payload["errorId"]
    assert payload["timestamp"].endswith("Z")
