"""
Provider reachability probe used by GET /api/health.

Calls the provider's models endpoint, which is cheap and does not
consume completion tokens, and measures latency.
"""

from __future__ import annotations

import time

import httpx
from pydantic import BaseModel, Field

from code_converter.logging_config import logger


class ProviderProbe(BaseModel):
    reachable: bool = Field(..., description="Whether the provider answered successfully")
    response_time_ms: float = Field(..., description="Round-trip time in milliseconds")
    error_message: str | None = Field(None, description="Error message if the probe failed")


async def check_provider_health(
    client: httpx.AsyncClient,
    *,
    base_url: str,
    api_key: str | None,
) -> ProviderProbe:
    if not api_key:
        return ProviderProbe(
            reachable=False,
            response_time_ms=0.0,
            error_message="OPENAI_API_KEY is not configured",
        )

    url = f"{base_url.rstrip('/')}/models"
    headers = {
        "Accept": "application/json",
        "Authorization": f"Bearer {api_key}",
    }

    start = time.perf_counter()
    try:
        resp = await client.get(url, headers=headers)
    except httpx.HTTPError as exc:
        duration_ms = (time.perf_counter() - start) * 1000.0
        logger.warning("provider health check failed for %s: %s", url, exc)
        return ProviderProbe(
            reachable=False, response_time_ms=duration_ms, error_message=str(exc)
        )

    duration_ms = (time.perf_counter() - start) * 1000.0
    if resp.status_code >= 400:
        logger.warning("provider health check for %s returned HTTP %s", url, resp.status_code)
        return ProviderProbe(
            reachable=False,
            response_time_ms=duration_ms,
            error_message=f"HTTP {resp.status_code}",
        )

    return ProviderProbe(reachable=True, response_time_ms=duration_ms)


__all__ = ["ProviderProbe", "check_provider_health"]
