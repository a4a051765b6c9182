"""ADLENS: Anthropic Claude Provider."""

from typing import Optional
from anthropic import AsyncAnthropic

from app.ai.base_provider import AIProvider
from app.config import settings
from app.core.logging import get_logger

logger = get_logger("ai.claude")

CLAUDE_MODEL = "claude-sonnet-4-20250514"


class ClaudeProvider(AIProvider):
    """Anthropic Claude provider for report generation."""

    name = "claude"

    def __init__(self, api_key: Optional[str] = None):
        api_key = api_key or settings.anthropic_api_key
        self.client = AsyncAnthropic(api_key=api_key) if api_key else None

    def is_available(self) -> bool:
        return self.client is not None

    async def generate_report(self, system_prompt: str, user_prompt: str) -> str:
        if not self.is_available():
            raise RuntimeError("Claude provider not configured")

        try:
            response = await self.client.messages.create(
                model=CLAUDE_MODEL,
                max_tokens=8000,
                system=system_prompt,
                messages=[{"role": "user", "content": user_prompt}],
            )
            return response.content[0].text if response.content else ""
        except Exception as e:
            logger.error(f"Claude generation failed: {e}")
            raise
