"""
Conversion orchestrator.

Wraps the slow, fallible, metered provider call: precondition checks,
timing, result extraction and error normalisation. It owns no state and
never touches the store; persistence is the caller's (optional) concern.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, Optional

from code_converter.errors import (
    ConversionError,
    EmptyInput,
    MissingCredential,
    ProviderAuthInvalid,
    ProviderGeneric,
    ProviderQuotaExceeded,
    ProviderRateLimited,
)
from code_converter.logging_config import logger
from code_converter.provider import (
    ProviderCallError,
    TranslationOptions,
    TranslationProvider,
    build_system_prompt,
    build_user_prompt,
)
from code_converter.settings import Settings


@dataclass(frozen=True)
class ConversionResult:
    result: str
    model: str
    tokens: Optional[int]
    elapsed_ms: int


def map_provider_error(exc: ProviderCallError, *, elapsed_ms: int) -> ConversionError:
    """Normalise a provider failure into the gateway's error taxonomy."""
    code = (exc.code or "").lower()

    if code == "insufficient_quota":
        return ProviderQuotaExceeded(elapsed_ms=elapsed_ms)
    if code == "invalid_api_key" or exc.status_code == 401:
        return ProviderAuthInvalid(elapsed_ms=elapsed_ms)
    if code == "rate_limit_exceeded" or exc.status_code == 429:
        return ProviderRateLimited(elapsed_ms=elapsed_ms)
    return ProviderGeneric(f"Conversion error: {exc.message}", elapsed_ms=elapsed_ms)


class ConversionService:
    def __init__(
        self,
        provider: TranslationProvider,
        settings: Settings,
        *,
        clock: Callable[[], float] = time.perf_counter,
    ) -> None:
        self.provider = provider
        self.settings = settings
        self._clock = clock

    def _options(self) -> TranslationOptions:
        return TranslationOptions(
            model=self.settings.openai_model,
            temperature=self.settings.openai_temperature,
            max_tokens=self.settings.openai_max_tokens,
            system_prompt=build_system_prompt(
                self.settings.source_language, self.settings.target_language
            ),
        )

    def _elapsed_ms(self, start: float) -> int:
        return int(round((self._clock() - start) * 1000))

    async def convert(self, source_text: str) -> ConversionResult:
        if not self.settings.openai_api_key:
            raise MissingCredential()
        if not source_text or not source_text.strip():
            raise EmptyInput()

        start = self._clock()
        user_prompt = build_user_prompt(
            source_text, self.settings.source_language, self.settings.target_language
        )

        try:
            completion = await self.provider.translate(user_prompt, self._options())
        except ProviderCallError as exc:
            error = map_provider_error(exc, elapsed_ms=self._elapsed_ms(start))
            logger.error(
                "conversion failed after %dms: %s (provider status=%s code=%s)",
                error.elapsed_ms,
                error.error_code,
                exc.status_code,
                exc.code,
            )
            raise error from exc

        elapsed_ms = self._elapsed_ms(start)
        text = completion.text
        if not text or not text.strip():
            logger.error("conversion failed after %dms: provider returned empty content", elapsed_ms)
            raise ProviderGeneric(
                "Conversion error: empty response from the translation provider",
                elapsed_ms=elapsed_ms,
            )

        logger.info(
            "conversion completed in %dms (model=%s tokens=%s chars=%d)",
            elapsed_ms,
            completion.model,
            completion.total_tokens,
            len(source_text),
        )
        return ConversionResult(
            result=text,
            model=completion.model,
            tokens=completion.total_tokens,
            elapsed_ms=elapsed_ms,
        )


__all__ = ["ConversionResult", "ConversionService", "map_provider_error"]
