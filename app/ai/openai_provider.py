"""ADLENS: OpenAI Provider."""

from typing import Optional
from openai import AsyncOpenAI

from app.ai.base_provider import AIProvider
from app.config import settings
from app.core.logging import get_logger

logger = get_logger("ai.openai")

OPENAI_MODEL = "gpt-4o-mini"


class OpenAIProvider(AIProvider):
    """OpenAI chat-completions provider for report generation."""

    name = "openai"

    def __init__(self, api_key: Optional[str] = None):
        api_key = api_key or settings.openai_api_key
        self.client = AsyncOpenAI(api_key=api_key) if api_key else None

    def is_available(self) -> bool:
        return self.client is not None

    async def generate_report(self, system_prompt: str, user_prompt: str) -> str:
        if not self.is_available():
            raise RuntimeError("OpenAI provider not configured")

        try:
            response = await self.client.chat.completions.create(
                model=OPENAI_MODEL,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
                temperature=0.3,
                max_tokens=8000,
            )
            return response.choices[0].message.content or ""
        except Exception as e:
            logger.error(f"OpenAI generation failed: {e}")
            raise
