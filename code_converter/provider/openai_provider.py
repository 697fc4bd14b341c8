"""
Translation provider backed by an OpenAI-compatible chat completions API.

The gateway treats the provider as one opaque capability:
`translate(text, options) -> ProviderCompletion`, failing with
ProviderCallError. Mapping those failures onto the gateway's error
taxonomy is the orchestrator's job, not this module's.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol

import httpx

from code_converter.logging_config import logger


@dataclass(frozen=True)
class TranslationOptions:
    model: str
    temperature: float
    max_tokens: int
    system_prompt: str


@dataclass(frozen=True)
class ProviderCompletion:
    text: Optional[str]
    total_tokens: Optional[int]
    model: str


class ProviderCallError(Exception):
    """
    A failed provider call.

    `code` is the provider's machine-readable error code when one was
    returned (e.g. "insufficient_quota"), otherwise None.
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        code: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.code = code


class TranslationProvider(Protocol):
    async def translate(self, text: str, options: TranslationOptions) -> ProviderCompletion:
        ...


def _parse_error_body(resp: httpx.Response) -> tuple[Optional[str], str]:
    """
    Extract (code, message) from an OpenAI-style error body:
    {"error": {"message": "...", "type": "...", "code": "..."}}
    """
    try:
        payload = resp.json()
    except (json.JSONDecodeError, ValueError):
        return None, resp.text[:200] or f"HTTP {resp.status_code}"

    error = payload.get("error") if isinstance(payload, dict) else None
    if not isinstance(error, dict):
        return None, f"HTTP {resp.status_code}"

    code = error.get("code") or error.get("type")
    message = error.get("message") or f"HTTP {resp.status_code}"
    return (str(code) if code else None), str(message)


def _extract_text(payload: Dict[str, Any]) -> Optional[str]:
    choices = payload.get("choices")
    if not isinstance(choices, list) or not choices:
        return None
    first = choices[0]
    if not isinstance(first, dict):
        return None
    message = first.get("message")
    if not isinstance(message, dict):
        return None
    content = message.get("content")
    return content if isinstance(content, str) else None


def _extract_total_tokens(payload: Dict[str, Any]) -> Optional[int]:
    usage = payload.get("usage")
    if not isinstance(usage, dict):
        return None
    total = usage.get("total_tokens")
    return total if isinstance(total, int) else None


class OpenAICompatibleProvider:
    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        base_url: str,
        api_key: str,
    ) -> None:
        self.client = client
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key

    def _headers(self) -> dict[str, str]:
        return {
            "Accept": "application/json",
            "Authorization": f"Bearer {self.api_key}",
        }

    async def translate(self, text: str, options: TranslationOptions) -> ProviderCompletion:
        url = f"{self.base_url}/chat/completions"
        body = {
            "model": options.model,
            "messages": [
                {"role": "system", "content": options.system_prompt},
                {"role": "user", "content": text},
            ],
            "temperature": options.temperature,
            "max_tokens": options.max_tokens,
        }

        logger.debug("provider call: POST %s model=%s", url, options.model)
        try:
            resp = await self.client.post(url, headers=self._headers(), json=body)
        except httpx.TimeoutException as exc:
            raise ProviderCallError(f"Provider request timed out: {exc}", code="timeout") from exc
        except httpx.HTTPError as exc:
            raise ProviderCallError(f"Provider request failed: {exc}", code="transport_error") from exc

        if resp.status_code >= 400:
            code, message = _parse_error_body(resp)
            logger.warning(
                "provider HTTP error %s code=%s message=%s",
                resp.status_code,
                code,
                message,
            )
            raise ProviderCallError(message, status_code=resp.status_code, code=code)

        try:
            payload = resp.json()
        except (json.JSONDecodeError, ValueError) as exc:
            raise ProviderCallError(
                "Provider returned a non-JSON response", status_code=resp.status_code
            ) from exc
        if not isinstance(payload, dict):
            raise ProviderCallError(
                "Provider returned an unexpected payload", status_code=resp.status_code
            )

        return ProviderCompletion(
            text=_extract_text(payload),
            total_tokens=_extract_total_tokens(payload),
            model=str(payload.get("model") or options.model),
        )


__all__ = [
    "OpenAICompatibleProvider",
    "ProviderCallError",
    "ProviderCompletion",
    "TranslationOptions",
    "TranslationProvider",
]
