"""Lookup of AI provider credentials."""

import logging
from datetime import datetime
from typing import Optional, Protocol

from sqlalchemy import select
from sqlalchemy.orm import sessionmaker

from ..config import Settings, settings as default_settings
from ..database import AsyncSessionLocal
from ..models import ApiKey

logger = logging.getLogger(__name__)


class CredentialStore(Protocol):
    async def get_active_credential(self, provider: str) -> Optional[str]:
        ...


class DatabaseCredentialStore:
    """
    Credentials from the ``api_keys`` table.

    A stored row decides whether the provider is enabled. Environment keys are
    used only for providers that have no row.
    """

    def __init__(self, session_factory: sessionmaker = AsyncSessionLocal,
                 config: Settings = default_settings):
        self.session_factory = session_factory
        self.config = config

    async def get_active_credential(self, provider: str) -> Optional[str]:
        """Return the active API key for ``provider`` or None when it is disabled or not configured."""
        provider = provider.lower()
        try:
            async with self.session_factory() as db:
                result = await db.execute(
                    select(ApiKey.api_key, ApiKey.is_active).where(ApiKey.provider == provider)
                )
                row = result.first()
        except Exception as e:
            logger.warning(f"⚠️ Credential lookup failed for {provider}: {e}")
            row = None

        if row is None:
            return self.config.get_env_credential(provider)
        if not row.is_active:
            logger.debug(f"Provider {provider} is disabled in api_keys")
            return None
        return row.api_key or None

    async def set_credential(self, provider: str, api_key: str, is_active: bool = True) -> ApiKey:
        """Create or replace the stored key for a provider."""
        provider = provider.lower()
        async with self.session_factory() as db:
            result = await db.execute(select(ApiKey).where(ApiKey.provider == provider))
            row = result.scalar_one_or_none()
            if row is None:
                row = ApiKey(provider=provider, api_key=api_key, is_active=is_active)
                db.add(row)
            else:
                row.api_key = api_key
                row.is_active = is_active
                row.updated_at = datetime.utcnow()
            await db.commit()
            await db.refresh(row)
            return row


class StaticCredentialStore:
    """In-memory credentials, e.g. for scripts."""

    def __init__(self, credentials: dict):
        self.credentials = {name.lower(): key for name, key in credentials.items() if key}

    async def get_active_credential(self, provider: str) -> Optional[str]:
        return self.credentials.get(provider.lower())
