"""ADLENS: Weekly Report Usage Ledger."""

import asyncio
import math
import uuid
from datetime import date, datetime, timedelta, timezone
from typing import Optional, Protocol, Tuple

from pydantic import BaseModel
from sqlalchemy import func
from sqlalchemy.engine import Engine
from sqlmodel import Session, select

from app.config import settings
from app.core.logging import get_logger
from app.database import engine as default_engine
from app.models.db_models import ReportUsage, Subscription

logger = get_logger("storage.usage")


class LimitStatus(BaseModel):
    """Where a user stands against this week's report allowance."""

    can_generate: bool
    current_usage: int
    limit: int
    remaining: int
    week_start: str
    resets_at: str
    days_until_reset: int


class UsageLedger(Protocol):
    async def check_limit(self, user_id: str) -> LimitStatus:
        ...

    async def record(
        self,
        user_id: str,
        report_type: str,
        account_id: Optional[str] = None,
        time_range: Optional[str] = None,
        campaign_id: Optional[str] = None,
    ) -> str:
        ...


def week_start(day: Optional[date] = None) -> date:
    """Monday of the week containing ``day`` (UTC today by default)."""
    day = day or datetime.now(timezone.utc).date()
    return day - timedelta(days=day.weekday())


class SqlUsageLedger:
    """``UsageLedger`` backed by the ``report_usage`` table."""

    def __init__(self, engine: Optional[Engine] = None):
        self.engine = engine or default_engine

    def _effective_limit(self, session: Session, user_id: str) -> int:
        active = session.exec(
            select(Subscription).where(
                Subscription.user_id == user_id, Subscription.status == "active"
            )
        ).first()
        if active is not None:
            return settings.premium_weekly_report_limit
        return settings.weekly_report_limit

    def _count(self, user_id: str, start: date, limit: Optional[int]) -> Tuple[int, int]:
        with Session(self.engine) as session:
            effective = limit if limit is not None else self._effective_limit(session, user_id)
            current = session.exec(
                select(func.count(ReportUsage.id)).where(
                    ReportUsage.user_id == user_id,
                    ReportUsage.week_start == start.isoformat(),
                )
            ).one()
        return current, effective

    async def check_limit(
        self, user_id: str, limit: Optional[int] = None, now: Optional[datetime] = None
    ) -> LimitStatus:
        now = now or datetime.now(timezone.utc)
        start = week_start(now.date())
        current, effective = await asyncio.to_thread(self._count, user_id, start, limit)

        resets_at = datetime(start.year, start.month, start.day, tzinfo=timezone.utc) + timedelta(days=7)
        days_until_reset = math.ceil((resets_at - now).total_seconds() / 86400)
        return LimitStatus(
            can_generate=current < effective,
            current_usage=current,
            limit=effective,
            remaining=max(0, effective - current),
            week_start=start.isoformat(),
            resets_at=resets_at.isoformat(),
            days_until_reset=days_until_reset,
        )

    async def record(
        self,
        user_id: str,
        report_type: str,
        account_id: Optional[str] = None,
        time_range: Optional[str] = None,
        campaign_id: Optional[str] = None,
    ) -> str:
        row = ReportUsage(
            user_id=user_id,
            report_type=report_type,
            account_id=account_id,
            time_range=time_range,
            campaign_id=campaign_id,
            week_start=week_start().isoformat(),
        )
        record_id = await asyncio.to_thread(self._insert, row)
        logger.info(f"Recorded {report_type} usage: {record_id}")
        return record_id

    def _insert(self, row: ReportUsage) -> str:
        with Session(self.engine) as session:
            session.add(row)
            session.commit()
            session.refresh(row)
            return str(row.id) if row.id is not None else uuid.uuid4().hex
