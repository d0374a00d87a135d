"""Provider chain for page OCR and article structuring."""

import logging
from typing import Awaitable, Callable, Dict, List, Optional, Sequence, TypeVar

from .ai_providers import PROVIDER_FACTORIES, ExtractionProvider
from .credential_store import CredentialStore
from .extraction_types import ArticleExtraction, OCRResult
from ..config import Settings, settings as default_settings
from ..core.exceptions import NoProviderAvailable
from ..core.http_client import AsyncHTTPClient

logger = logging.getLogger(__name__)

T = TypeVar('T')


class ExtractionOracle:
    """Runs each call against providers in priority order; the first success wins."""

    def __init__(self, providers: Sequence[ExtractionProvider]):
        self.providers: List[ExtractionProvider] = list(providers)

    @property
    def provider_names(self) -> List[str]:
        return [provider.name for provider in self.providers]

    async def _first_success(self, operation: str,
                             call: Callable[[ExtractionProvider], Awaitable[T]]) -> T:
        if not self.providers:
            raise NoProviderAvailable(f"No AI providers configured for {operation}")

        errors: Dict[str, str] = {}
        for provider in self.providers:
            try:
                return await call(provider)
            except Exception as e:
                errors[provider.name] = str(e)
                logger.warning(f"⚠️ {provider.name} {operation} failed, trying next provider: {e}")

        raise NoProviderAvailable(
            f"All AI providers failed for {operation}: " +
            "; ".join(f"{name}: {error}" for name, error in errors.items()),
            errors=errors
        )

    async def recognize_text(self, image_bytes: bytes, mime_type: str = 'image/jpeg') -> OCRResult:
        """OCR a page image."""
        return await self._first_success(
            "ocr", lambda provider: provider.recognize_text(image_bytes, mime_type)
        )

    async def structure(self, text: str, page_number: int) -> ArticleExtraction:
        """Turn recognized page text into article data."""
        return await self._first_success(
            "structuring", lambda provider: provider.structure(text, page_number)
        )


async def build_extraction_oracle(credentials: CredentialStore,
                                  config: Settings = default_settings,
                                  http_client: Optional[AsyncHTTPClient] = None) -> ExtractionOracle:
    """Resolve the enabled providers, in configured order, into an oracle."""
    providers = []
    for name in config.get_provider_order():
        factory = PROVIDER_FACTORIES.get(name)
        if factory is None:
            logger.warning(f"⚠️ Unknown AI provider in AI_PROVIDER_ORDER: {name}")
            continue
        api_key = await credentials.get_active_credential(name)
        if not api_key:
            logger.debug(f"AI provider {name} not configured")
            continue
        providers.append(factory(api_key, config=config, http_client=http_client))

    if providers:
        logger.info(f"🤖 AI providers enabled: {', '.join(p.name for p in providers)}")
    else:
        logger.warning("⚠️ No AI providers configured; pages will be skipped")
    return ExtractionOracle(providers)
