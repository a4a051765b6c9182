"""ADLENS: Persistence Models (tokens, report cache, usage ledger)."""

from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime
from sqlmodel import SQLModel, Field

from app.database import utcnow


class GoogleAdsToken(SQLModel, table=True):
    """OAuth credential for one user's Google Ads connection."""

    __tablename__ = "google_ads_tokens"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: str = Field(index=True, unique=True)
    access_token: str
    refresh_token: str
    expires_at: datetime = Field(sa_type=DateTime(timezone=True))
    updated_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))


class ReportCacheEntry(SQLModel, table=True):
    """A generated report (or serialized block data) cached per key."""

    __tablename__ = "google_ads_reports_cache"

    id: Optional[int] = Field(default=None, primary_key=True)
    cache_key: str = Field(index=True, unique=True, description="sha256 of the key tuple")
    user_id: str = Field(index=True)
    account_id: str
    time_range: str
    campaign_id: Optional[str] = None
    report_type: str = Field(default="regular", description="regular | weekly")
    report_content: str
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))
    updated_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))
    expires_at: datetime = Field(sa_type=DateTime(timezone=True))


class ReportUsage(SQLModel, table=True):
    """One row per newly generated report; counted per Monday-based week."""

    __tablename__ = "report_usage"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: str = Field(index=True)
    report_type: str = Field(default="ai_analysis", description="ai_analysis | weekly_analysis")
    account_id: Optional[str] = None
    time_range: Optional[str] = None
    campaign_id: Optional[str] = None
    week_start: str = Field(index=True, description="YYYY-MM-DD (Monday)")
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))


class Subscription(SQLModel, table=True):
    """Billing status; an active subscription raises the weekly limit."""

    __tablename__ = "subscriptions"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: str = Field(index=True)
    status: str = "inactive"
