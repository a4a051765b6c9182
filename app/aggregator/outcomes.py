"""ADLENS: Aggregation Outcomes.

``FanOutAggregator.generate`` returns exactly one of these. Routes map them
to HTTP responses; nothing downstream inspects a ``fromCache`` flag.
"""

from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel

Artifact = Union[str, Dict[str, Any]]

LIMIT_EXCEEDED_MESSAGE = (
    "Weekly report limit exceeded. You have generated the maximum number "
    "of reports allowed for this week."
)


class Cached(BaseModel):
    """Artifact served from the report cache. No usage is recorded."""

    model_config = {"frozen": True}

    artifact: Artifact


class Generated(BaseModel):
    """Artifact built by a fresh fan-out. Usage was recorded once."""

    model_config = {"frozen": True}

    artifact: Artifact


class NotReady(BaseModel):
    """``check_only`` request with nothing in the cache."""

    model_config = {"frozen": True}


class LimitInfo(BaseModel):
    model_config = {"frozen": True}

    current_usage: int
    limit: int
    resets_at: str


class Failed(BaseModel):
    model_config = {"frozen": True}

    reason: str
    failed: List[str] = []
    limit_info: Optional[LimitInfo] = None

    @property
    def status_code(self) -> int:
        return 429 if self.limit_info is not None else 500


Outcome = Union[Cached, Generated, NotReady, Failed]
