from collections.abc import AsyncIterator, Iterator

import httpx
from fastapi import Depends, Request
from sqlalchemy.orm import Session

from .db import get_db_session
from .provider import OpenAICompatibleProvider
from .services.conversion_service import ConversionService
from .services.history_writer import HistoryWriter
from .settings import settings


def get_db() -> Iterator[Session]:
    yield from get_db_session()


async def get_http_client() -> AsyncIterator[httpx.AsyncClient]:
    """
    Short-lived AsyncClient for provider HTTP calls.
    """
    async with httpx.AsyncClient(timeout=settings.provider_timeout_seconds) as client:
        yield client


def get_conversion_service(
    client: httpx.AsyncClient = Depends(get_http_client),
) -> ConversionService:
    provider = OpenAICompatibleProvider(
        client,
        base_url=settings.openai_base_url,
        api_key=settings.openai_api_key or "",
    )
    return ConversionService(provider, settings)


def get_history_writer(request: Request) -> HistoryWriter:
    """The writer started by the application lifespan."""
    return request.app.state.history_writer


__all__ = [
    "get_conversion_service",
    "get_db",
    "get_history_writer",
    "get_http_client",
]
