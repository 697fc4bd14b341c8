from __future__ import annotations

from typing import Any, Callable

import httpx
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from code_converter.deps import get_conversion_service, get_db, get_http_client
from code_converter.models import Base
from code_converter.provider import OpenAICompatibleProvider
from code_converter.services.conversion_service import ConversionService
from code_converter.services.history_writer import HistoryWriter
from code_converter.settings import Settings


def make_session_factory() -> sessionmaker[Session]:
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        future=True,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    return sessionmaker(
        bind=engine,
        autoflush=False,
        autocommit=False,
        future=True,
        expire_on_commit=False,
    )


def install_inmemory_db(app) -> sessionmaker[Session]:
    """
    Attach an in-memory SQLite database to the FastAPI app, both for the
    read-side routes and for the history writer thread.
    """

    SessionLocal = make_session_factory()

    def override_get_db():
        db = SessionLocal()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.state.history_writer = HistoryWriter(SessionLocal)

    return SessionLocal


def chat_completion(
    content: str | None,
    *,
    total_tokens: int | None = 42,
    model: str = "gpt-4-0613",
) -> httpx.Response:
    """An OpenAI-style chat completion response."""
    body: dict[str, Any] = {
        "id": "chatcmpl-test",
        "object": "chat.completion",
        "model": model,
        "choices": [
            {
                "index": 0,
                "message": {"role": "assistant", "content": content},
                "finish_reason": "stop",
            }
        ],
    }
    if total_tokens is not None:
        body["usage"] = {
            "prompt_tokens": total_tokens // 2,
            "completion_tokens": total_tokens - total_tokens // 2,
            "total_tokens": total_tokens,
        }
    return httpx.Response(200, json=body)


def provider_error(status_code: int, *, code: str | None, message: str) -> httpx.Response:
    return httpx.Response(
        status_code,
        json={"error": {"message": message, "type": "invalid_request_error", "code": code}},
    )


def make_settings(**overrides: Any) -> Settings:
    values: dict[str, Any] = {"OPENAI_API_KEY": "sk-test"}  # pragma: allowlist secret
    values.update(overrides)
    return Settings(**values)


def install_fake_provider(
    app,
    handler: Callable[[httpx.Request], httpx.Response],
    *,
    settings: Settings | None = None,
) -> None:
    """Route the conversion service through an httpx.MockTransport."""
    cfg = settings or make_settings()

    async def override_conversion_service():
        transport = httpx.MockTransport(handler)
        async with httpx.AsyncClient(transport=transport) as client:
            provider = OpenAICompatibleProvider(
                client,
                base_url=cfg.openai_base_url,
                api_key=cfg.openai_api_key or "",
            )
            yield ConversionService(provider, cfg)

    app.dependency_overrides[get_conversion_service] = override_conversion_service


def install_fake_http_client(app, handler: Callable[[httpx.Request], httpx.Response]) -> None:
    async def override_http_client():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            yield client

    app.dependency_overrides[get_http_client] = override_http_client
