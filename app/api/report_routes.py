"""ADLENS: Single Report Routes."""

from typing import Any, List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field, field_validator

from app.api.dependencies import get_runner, get_user_id
from app.api.handler import ReportRequest, error_response, handle_request
from app.core.logging import get_logger, log_fields
from app.reports.campaigns import describe_accounts
from app.reports.executor import ReportRunner
from app.reports.registry import REPORTS, UnknownReportError, get_report

logger = get_logger("api.reports")

router = APIRouter(prefix="/google-ads", tags=["Reports"])


class AccountDetailsRequest(BaseModel):
    model_config = {"populate_by_name": True}

    access_token: Optional[str] = Field(None, alias="accessToken")
    account_ids: Optional[List[str]] = Field(None, alias="accountIds")

    @field_validator("account_ids", mode="before")
    @classmethod
    def _ids_as_text(cls, value: Any) -> Any:
        if isinstance(value, list):
            return [str(v) if isinstance(v, int) and not isinstance(v, bool) else v for v in value]
        return value


@router.get("/reports")
async def list_reports():
    """List every report key the service can run."""
    return {
        "reports": [
            {"key": key, "description": REPORTS[key].description} for key in sorted(REPORTS)
        ]
    }


@router.post("/account-details")
async def account_details(
    body: AccountDetailsRequest,
    user_id: Optional[str] = Depends(get_user_id),
    runner: ReportRunner = Depends(get_runner),
):
    """Describe several accounts at once; failures are reported per account."""
    if not body.access_token:
        return error_response("Access token is required", 400)
    if not body.account_ids:
        return error_response("Account IDs array is required", 400)

    accounts = await describe_accounts(runner, body.access_token, body.account_ids, user_id)
    failed = sum(1 for account in accounts if "error" in account)
    if failed:
        logger.warning(
            f"{failed} of {len(accounts)} accounts could not be described",
            extra=log_fields(endpoint="/google-ads/account-details"),
        )
    return {"accounts": accounts}


@router.post("/{report_key}")
async def run_report(
    report_key: str,
    body: ReportRequest,
    user_id: Optional[str] = Depends(get_user_id),
    runner: ReportRunner = Depends(get_runner),
):
    """Run one report and return its payload."""
    try:
        definition = get_report(report_key)
    except UnknownReportError as e:
        return error_response(str(e), 404)

    return await handle_request(
        body,
        user_id,
        lambda ctx: runner.run(definition, ctx),
        endpoint=f"/google-ads/{report_key}",
    )
