"""
Field-level validation of conversion requests.

Runs before the orchestrator is touched, so an invalid payload never
costs a provider call.
"""

from __future__ import annotations

from dataclasses import dataclass

from .errors import RequestValidationFailed
from .schemas import ConversionPayload


@dataclass(frozen=True)
class ConversionRequest:
    source_text: str
    save_history: bool = True

    @property
    def input_length(self) -> int:
        return len(self.source_text)


def validate_conversion_request(
    payload: ConversionPayload, *, max_length: int
) -> ConversionRequest:
    """
    Turn a shape-checked payload into a ConversionRequest or raise
    RequestValidationFailed with the reason.
    """
    text = payload.source_text
    if text is None or not text.strip():
        raise RequestValidationFailed("sourceText is required")
    if len(text) > max_length:
        raise RequestValidationFailed(
            f"Source text is too long. Maximum of {max_length} characters."
        )
    return ConversionRequest(source_text=text, save_history=payload.save_history)


__all__ = ["ConversionRequest", "validate_conversion_request"]
