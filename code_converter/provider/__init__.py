from .health import ProviderProbe, check_provider_health
from .openai_provider import (
    OpenAICompatibleProvider,
    ProviderCallError,
    ProviderCompletion,
    TranslationOptions,
    TranslationProvider,
)
from .prompts import build_system_prompt, build_user_prompt

__all__ = [
    "OpenAICompatibleProvider",
    "ProviderCallError",
    "ProviderCompletion",
    "ProviderProbe",
    "TranslationOptions",
    "TranslationProvider",
    "build_system_prompt",
    "build_user_prompt",
    "check_provider_health",
]
