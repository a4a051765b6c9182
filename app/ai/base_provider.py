"""ADLENS: Abstract AI Provider."""

from abc import ABC, abstractmethod


class AIProvider(ABC):
    """Abstract base for report summarization.

    Providers turn the assembled report prompt into a markdown report.
    Summarization is only used by the ai-report and weekly-report recipes;
    every single report works without a configured provider.
    """

    name = "base"

    @abstractmethod
    async def generate_report(self, system_prompt: str, user_prompt: str) -> str:
        """Generate a report from a system prompt and the data prompt.

        Args:
            system_prompt: Instructions for the report format and tone.
            user_prompt: The assembled report data, usually markdown with
                         embedded JSON blocks.

        Returns:
            The generated report text. May be empty; the caller decides
            whether an empty report is a failure.
        """
        ...

    @abstractmethod
    def is_available(self) -> bool:
        """Check if this provider is configured and ready."""
        ...
