"""ADLENS: Google OAuth Token Store & Refresher.

The refresher is the collaborator ``GoogleAdsClient`` calls on a 401. It
owns persistence of refreshed tokens; the client never stores them.
"""

import asyncio
from datetime import timedelta
from typing import Optional

import httpx
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from app.config import settings
from app.core.logging import get_logger
from app.database import as_utc, engine as default_engine, utcnow
from app.models.db_models import GoogleAdsToken

logger = get_logger("google_ads.tokens")


class SqlTokenStore:
    """Reads and writes ``GoogleAdsToken`` rows."""

    def __init__(self, engine: Optional[Engine] = None):
        self.engine = engine or default_engine

    def get(self, user_id: str) -> Optional[GoogleAdsToken]:
        with Session(self.engine) as session:
            return session.exec(
                select(GoogleAdsToken).where(GoogleAdsToken.user_id == user_id)
            ).first()

    def save(
        self, user_id: str, access_token: str, refresh_token: str, expires_in: int
    ) -> GoogleAdsToken:
        with Session(self.engine) as session:
            row = session.exec(
                select(GoogleAdsToken).where(GoogleAdsToken.user_id == user_id)
            ).first()
            now = utcnow()
            if row is None:
                row = GoogleAdsToken(
                    user_id=user_id,
                    access_token=access_token,
                    refresh_token=refresh_token,
                    expires_at=now + timedelta(seconds=expires_in),
                )
            else:
                row.access_token = access_token
                row.refresh_token = refresh_token
                row.expires_at = now + timedelta(seconds=expires_in)
                row.updated_at = now
            session.add(row)
            session.commit()
            session.refresh(row)
            return row


class GoogleOAuthRefresher:
    """Exchanges a stored refresh token for a new access token."""

    def __init__(
        self,
        store: Optional[SqlTokenStore] = None,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        token_url: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.store = store or SqlTokenStore()
        self.client_id = client_id or settings.google_client_id
        self.client_secret = client_secret or settings.google_client_secret
        self.token_url = token_url or settings.google_token_url
        self._transport = transport

    async def refresh(self, identity: str) -> Optional[str]:
        """Return a new access token for ``identity`` or ``None`` on any failure."""
        try:
            tokens = await asyncio.to_thread(self.store.get, identity)
        except SQLAlchemyError as e:
            logger.error(f"Failed to load Google Ads tokens: {e}")
            return None
        if tokens is None:
            logger.warning("No stored Google Ads tokens; cannot refresh")
            return None

        try:
            async with httpx.AsyncClient(timeout=30.0, transport=self._transport) as client:
                resp = await client.post(
                    self.token_url,
                    data={
                        "client_id": self.client_id,
                        "client_secret": self.client_secret,
                        "refresh_token": tokens.refresh_token,
                        "grant_type": "refresh_token",
                    },
                )
            resp.raise_for_status()
            payload = resp.json()
            access_token = payload["access_token"]
            expires_in = int(payload.get("expires_in", 3600))
        except (httpx.HTTPError, ValueError, KeyError) as e:
            logger.error(f"Failed to refresh Google Ads token: {e}")
            return None

        try:
            await asyncio.to_thread(
                self.store.save, identity, access_token, tokens.refresh_token, expires_in
            )
        except SQLAlchemyError as e:
            logger.error(f"Failed to persist refreshed Google Ads token: {e}")
            return None
        logger.info("Google Ads access token refreshed")
        return access_token

    async def ensure_fresh(self, identity: str) -> Optional[str]:
        """Stored access token, refreshed first when it expires within the buffer."""
        tokens = await asyncio.to_thread(self.store.get, identity)
        if tokens is None:
            return None
        buffer = timedelta(seconds=settings.token_refresh_buffer_seconds)
        if utcnow() >= as_utc(tokens.expires_at) - buffer:
            logger.info("Token is expired or expiring soon, refreshing...")
            return await self.refresh(identity)
        return tokens.access_token
