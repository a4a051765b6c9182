"""ADLENS: Report Cache.

Generated reports are cached per (user, account, time range, campaign,
report type, data-only flag). The SQL table is the primary store; when it is
unreachable a process-local map keeps the same keys so a flaky database
degrades to per-instance caching instead of failing requests.
"""

import asyncio
import hashlib
from datetime import datetime, timedelta
from typing import Dict, Optional, Protocol, Tuple

from pydantic import BaseModel
from sqlalchemy import delete
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from app.config import settings
from app.core.logging import get_logger
from app.database import as_utc, engine as default_engine, utcnow
from app.models.db_models import ReportCacheEntry

logger = get_logger("storage.cache")


class CacheKey(BaseModel):
    """Identity of one cached artifact."""

    model_config = {"frozen": True}

    user_id: str
    account_id: str
    time_range: str
    campaign_id: Optional[str] = None
    report_type: str = "regular"
    data_only: bool = False

    def digest(self) -> str:
        raw = (
            f"{self.user_id}:{self.account_id}:{self.time_range}:"
            f"{self.campaign_id or 'null'}:{self.report_type}:"
            f"{'data' if self.data_only else 'report'}"
        )
        return hashlib.sha256(raw.encode("utf-8")).hexdigest()


class ReportCache(Protocol):
    async def get(self, key: CacheKey) -> Optional[str]:
        ...

    async def set(self, key: CacheKey, content: str) -> bool:
        ...


class SqlReportCache:
    """``ReportCache`` backed by the ``google_ads_reports_cache`` table."""

    def __init__(self, engine: Optional[Engine] = None, ttl_hours: Optional[int] = None):
        self.engine = engine or default_engine
        if ttl_hours is None:
            ttl_hours = settings.report_cache_ttl_hours
        self.ttl = timedelta(hours=ttl_hours)
        # digest -> (content, expires_at, user_id)
        self._memory: Dict[str, Tuple[str, datetime, str]] = {}

    async def get(self, key: CacheKey) -> Optional[str]:
        return await asyncio.to_thread(self._get, key)

    async def set(self, key: CacheKey, content: str) -> bool:
        return await asyncio.to_thread(self._set, key, content)

    def _get(self, key: CacheKey) -> Optional[str]:
        digest = key.digest()
        now = utcnow()
        try:
            with Session(self.engine) as session:
                row = session.exec(
                    select(ReportCacheEntry).where(
                        ReportCacheEntry.cache_key == digest,
                        ReportCacheEntry.user_id == key.user_id,
                    )
                ).first()
                if row is not None:
                    if as_utc(row.expires_at) > now:
                        logger.info("Cache hit (database)")
                        return row.report_content
                    session.delete(row)
                    session.commit()
        except SQLAlchemyError as e:
            logger.warning(f"Cache query error, falling back to memory: {e}")

        entry = self._memory.get(digest)
        if entry and entry[1] > now and entry[2] == key.user_id:
            logger.info("Cache hit (memory)")
            return entry[0]

        logger.info("Cache miss")
        return None

    def _set(self, key: CacheKey, content: str) -> bool:
        if not key.user_id:
            return False

        digest = key.digest()
        now = utcnow()
        expires_at = now + self.ttl
        try:
            with Session(self.engine) as session:
                row = session.exec(
                    select(ReportCacheEntry).where(ReportCacheEntry.cache_key == digest)
                ).first()
                if row is None:
                    row = ReportCacheEntry(
                        cache_key=digest,
                        user_id=key.user_id,
                        account_id=key.account_id,
                        time_range=key.time_range,
                        campaign_id=key.campaign_id,
                        report_type=key.report_type,
                        report_content=content,
                        expires_at=expires_at,
                    )
                else:
                    row.report_content = content
                    row.updated_at = now
                    row.expires_at = expires_at
                session.add(row)
                session.commit()
            logger.info("Report cached in database")
        except SQLAlchemyError as e:
            logger.warning(f"Cache upsert error, saving to memory: {e}")
            self._memory[digest] = (content, expires_at, key.user_id)
            logger.info("Report cached in memory as fallback")
        return True

    def cleanup_expired(self) -> int:
        """Delete expired entries from both stores. Returns rows removed."""
        now = utcnow()
        deleted = 0
        try:
            with Session(self.engine) as session:
                result = session.execute(
                    delete(ReportCacheEntry).where(ReportCacheEntry.expires_at <= now)
                )
                session.commit()
                deleted += result.rowcount or 0
        except SQLAlchemyError as e:
            logger.warning(f"Cache cleanup error: {e}")

        for digest in [d for d, entry in self._memory.items() if entry[1] <= now]:
            del self._memory[digest]
            deleted += 1
        logger.info(f"Cleaned up {deleted} expired cache entries")
        return deleted

    def clear_user(self, user_id: str) -> int:
        """Drop every cached artifact belonging to ``user_id``."""
        deleted = 0
        try:
            with Session(self.engine) as session:
                result = session.execute(
                    delete(ReportCacheEntry).where(ReportCacheEntry.user_id == user_id)
                )
                session.commit()
                deleted += result.rowcount or 0
        except SQLAlchemyError as e:
            logger.warning(f"Clear user cache error: {e}")

        for digest in [d for d, entry in self._memory.items() if entry[2] == user_id]:
            del self._memory[digest]
            deleted += 1
        return deleted
