"""ADLENS: Sarvam AI Provider."""

from typing import Optional
from sarvamai import AsyncSarvamAI

from app.ai.base_provider import AIProvider
from app.config import settings
from app.core.logging import get_logger

logger = get_logger("ai.sarvam")


class SarvamProvider(AIProvider):
    """Sarvam AI provider for report generation (model: sarvam-m)."""

    name = "sarvam"

    def __init__(self, api_key: Optional[str] = None):
        api_key = api_key or settings.sarvam_api_key
        self.client = AsyncSarvamAI(api_subscription_key=api_key) if api_key else None

    def is_available(self) -> bool:
        return self.client is not None

    async def generate_report(self, system_prompt: str, user_prompt: str) -> str:
        if not self.is_available():
            raise RuntimeError("Sarvam provider not configured")

        try:
            response = await self.client.chat.completions(
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
                temperature=0.3,
                max_tokens=4000,
            )
            return response.choices[0].message.content or ""
        except Exception as e:
            logger.error(f"Sarvam generation failed: {e}")
            raise
