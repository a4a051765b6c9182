"""ADLENS: Report Summarizer.

Picks an AI provider and turns an assembled report prompt into markdown.
The aggregator only sees the ``Summarizer`` protocol, so tests can swap in
a fake without any provider SDK.
"""

from typing import Dict, Optional, Protocol, Tuple, Type

from app.ai.base_provider import AIProvider
from app.ai.claude_provider import ClaudeProvider
from app.ai.openai_provider import OpenAIProvider
from app.ai.prompts import AUDIT_PROMPT, WEEKLY_PROMPT
from app.ai.sarvam_provider import SarvamProvider
from app.config import settings
from app.core.logging import get_logger

logger = get_logger("ai.summarizer")

PROVIDERS: Dict[str, Type[AIProvider]] = {
    "sarvam": SarvamProvider,
    "openai": OpenAIProvider,
    "claude": ClaudeProvider,
}

SYSTEM_PROMPTS = {
    "audit": AUDIT_PROMPT,
    "weekly": WEEKLY_PROMPT,
}


class ProviderNotConfiguredError(RuntimeError):
    """No usable AI provider is configured."""

    status_code = 503


class Summarizer(Protocol):
    async def summarize(self, prompt: str, kind: str) -> str: ...


def select_provider(provider_name: str = "auto") -> Tuple[str, AIProvider]:
    """Select and return an available AI provider.

    When provider_name is 'auto', tries DEFAULT_AI_PROVIDER first,
    then falls through remaining providers.
    """
    if provider_name == "auto":
        default = settings.default_ai_provider
        if default in PROVIDERS:
            provider = PROVIDERS[default]()
            if provider.is_available():
                return default, provider
        for name, cls in PROVIDERS.items():
            if name == default:
                continue  # already tried
            provider = cls()
            if provider.is_available():
                return name, provider
        raise ProviderNotConfiguredError(
            "No AI provider configured. Set OPENAI_API_KEY, ANTHROPIC_API_KEY, or SARVAM_API_KEY in .env."
        )

    if provider_name not in PROVIDERS:
        raise ValueError(f"Unknown provider: {provider_name}.")
    provider = PROVIDERS[provider_name]()
    if not provider.is_available():
        raise ProviderNotConfiguredError(f"{provider_name} provider not configured.")
    return provider_name, provider


class ProviderSummarizer:
    """``Summarizer`` backed by one of the configured AI providers."""

    def __init__(self, provider: Optional[AIProvider] = None, provider_name: str = "auto"):
        self._provider = provider
        self._provider_name = provider_name

    def _resolve(self) -> AIProvider:
        if self._provider is None:
            name, self._provider = select_provider(self._provider_name)
            logger.info(f"Using AI provider: {name}")
        return self._provider

    async def summarize(self, prompt: str, kind: str) -> str:
        if kind not in SYSTEM_PROMPTS:
            raise ValueError(f"Unknown summary kind: {kind}")
        provider = self._resolve()
        return await provider.generate_report(SYSTEM_PROMPTS[kind], prompt)
