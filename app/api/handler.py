"""ADLENS: Shared Request Handling for Google Ads Routes.

Every report route validates the same body, builds a ``ReportContext`` and
maps failures to the same JSON error shape.
"""

from typing import Any, Awaitable, Callable, Optional

from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, Field, field_validator

from app.core.limits import ReportMode
from app.core.logging import get_logger, log_fields
from app.reports.executor import ReportContext

logger = get_logger("api.handler")


# ── Request Models ──


class ReportRequest(BaseModel):
    """Body shared by every Google Ads route (camelCase on the wire)."""

    model_config = {"populate_by_name": True}

    access_token: Optional[str] = Field(None, alias="accessToken")
    account_id: Optional[str] = Field(None, alias="accountId")
    time_range: Optional[str] = Field(None, alias="timeRange")
    campaign_id: Optional[str] = Field(None, alias="campaignId")
    # row-cap column; set by the aggregator when it fans out over HTTP
    mode: ReportMode = ReportMode.FULL

    @field_validator("account_id", "campaign_id", mode="before")
    @classmethod
    def _ids_as_text(cls, value: Any) -> Any:
        # front-ends send numeric ids as numbers
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value

    def context(self, user_id: Optional[str] = None) -> ReportContext:
        return ReportContext(
            access_token=self.access_token,
            account_id=self.account_id,
            time_range=self.time_range or None,
            campaign_id=self.campaign_id or None,
            user_id=user_id,
            mode=self.mode,
        )


# ── Error Responses ──


def error_response(message: str, status_code: int, **extra: Any) -> JSONResponse:
    return JSONResponse({"error": message, **extra}, status_code=status_code)


def validate_request(body: ReportRequest) -> Optional[JSONResponse]:
    if not body.access_token:
        return error_response("Access token is required", 400)
    if not body.account_id:
        return error_response("Account not selected", 400)
    return None


async def handle_request(
    body: ReportRequest,
    user_id: Optional[str],
    data_fn: Callable[[ReportContext], Awaitable[Any]],
    endpoint: str = "",
) -> Response:
    """Validate, run ``data_fn`` and wrap its result as JSON.

    ``data_fn`` may return a ready ``Response`` (used for outcome-specific
    status codes) or any JSON-serializable payload.
    """
    invalid = validate_request(body)
    if invalid is not None:
        return invalid

    ctx = body.context(user_id)
    try:
        data = await data_fn(ctx)
    except Exception as e:
        logger.error(
            f"Request failed: {e}",
            extra=log_fields(endpoint=endpoint, account_id=ctx.account_id, status_code=500),
        )
        return error_response("Internal server error", 500, details=str(e))

    if isinstance(data, Response):
        return data
    return JSONResponse(data)
