"""AI provider backends for page OCR and article structuring.

Every provider exposes the same two coroutines, ``recognize_text`` and
``structure``, and talks to its vendor's REST API through the shared aiohttp
client. Providers are plain classes selected by name from ``PROVIDER_FACTORIES``.
"""

import base64
import json
import logging
from typing import Any, Callable, Dict, Optional, Protocol

from .extraction_types import (
    ArticleExtraction, OCRResult, detect_language, parse_article_extraction, parse_json_object
)
from .prompts import ExtractionPrompts
from ..config import Settings, settings as default_settings
from ..core.exceptions import APIError
from ..core.http_client import AsyncHTTPClient, use_http_client

logger = logging.getLogger(__name__)

# Vision models do not report a confidence score
DEFAULT_OCR_CONFIDENCE = 0.9


class ExtractionProvider(Protocol):
    """An AI backend able to read page images and structure article text."""

    name: str

    async def recognize_text(self, image_bytes: bytes, mime_type: str = 'image/jpeg') -> OCRResult:
        ...

    async def structure(self, text: str, page_number: int) -> ArticleExtraction:
        ...


async def _request_json(provider: str, url: str, payload: Dict[str, Any], timeout: int,
                        headers: Optional[Dict[str, str]] = None,
                        params: Optional[Dict[str, str]] = None,
                        http_client: Optional[AsyncHTTPClient] = None) -> Dict[str, Any]:
    """POST to a provider endpoint and return the decoded JSON body."""
    logger.debug(f"🤖 {provider} request to {url}")

    async with use_http_client(http_client) as client:
        status, body = await client.post_json(url, payload, headers=headers, params=params, timeout=timeout)

    if status == 429:
        raise APIError(f"{provider} rate limit exceeded", status_code=429, response_text=body[:500])
    if status != 200:
        raise APIError(f"{provider} API error: {status}", status_code=status, response_text=body[:500])

    try:
        return json.loads(body)
    except json.JSONDecodeError as e:
        raise APIError(f"Invalid JSON response from {provider}: {e}", status_code=status,
                       response_text=body[:500]) from e


def _ocr_result(provider: str, text: str) -> OCRResult:
    text = (text or '').strip()
    if not text:
        raise APIError(f"Empty OCR response from {provider}")
    return OCRResult(
        text=text,
        confidence=DEFAULT_OCR_CONFIDENCE,
        language=detect_language(text),
        provider=provider,
    )


def _article_result(provider: str, answer: str) -> ArticleExtraction:
    try:
        data = parse_json_object(answer)
    except ValueError as e:
        raise APIError(f"Failed to parse JSON from {provider} response: {e}",
                       response_text=(answer or '')[:500]) from e
    extraction = parse_article_extraction(data)
    extraction.provider = provider
    return extraction


class OpenAIProvider:
    """OpenAI chat completions backend."""

    name = "openai"

    def __init__(self, api_key: str, config: Settings = default_settings,
                 http_client: Optional[AsyncHTTPClient] = None):
        self.api_key = api_key
        self.endpoint = config.openai_api_endpoint
        self.ocr_model = config.openai_ocr_model
        self.text_model = config.openai_text_model
        self.timeout = config.ai_timeout
        self.http_client = http_client

    def _headers(self) -> Dict[str, str]:
        return {
            'Content-Type': 'application/json',
            'Authorization': f'Bearer {self.api_key}',
        }

    async def _complete(self, payload: Dict[str, Any]) -> str:
        data = await _request_json(self.name, self.endpoint, payload, self.timeout,
                                   headers=self._headers(), http_client=self.http_client)
        choices = data.get('choices') or []
        if not choices:
            raise APIError("Empty OpenAI response", status_code=200, response_text=json.dumps(data)[:500])
        return (choices[0].get('message') or {}).get('content') or ''

    async def recognize_text(self, image_bytes: bytes, mime_type: str = 'image/jpeg') -> OCRResult:
        encoded = base64.b64encode(image_bytes).decode('ascii')
        payload = {
            "model": self.ocr_model,
            "messages": [{
                "role": "user",
                "content": [
                    {"type": "text", "text": ExtractionPrompts.page_ocr()},
                    {"type": "image_url", "image_url": {"url": f"data:{mime_type};base64,{encoded}"}},
                ],
            }],
            "max_tokens": 4096,
        }
        return _ocr_result(self.name, await self._complete(payload))

    async def structure(self, text: str, page_number: int) -> ArticleExtraction:
        payload = {
            "model": self.text_model,
            "messages": [{"role": "user", "content": ExtractionPrompts.article_structure(text, page_number)}],
            "response_format": {"type": "json_object"},
            "temperature": 0.3,
        }
        return _article_result(self.name, await self._complete(payload))


class GeminiProvider:
    """Google Gemini generateContent backend."""

    name = "gemini"

    def __init__(self, api_key: str, config: Settings = default_settings,
                 http_client: Optional[AsyncHTTPClient] = None):
        self.api_key = api_key
        self.endpoint = config.gemini_api_endpoint.rstrip('/')
        self.model = config.gemini_model
        self.timeout = config.ai_timeout
        self.http_client = http_client

    async def _generate(self, parts: list, json_output: bool = False) -> str:
        generation_config: Dict[str, Any] = {"temperature": 0.1, "maxOutputTokens": 8192}
        if json_output:
            generation_config["responseMimeType"] = "application/json"

        payload = {
            "contents": [{"role": "user", "parts": parts}],
            "generationConfig": generation_config,
        }
        url = f"{self.endpoint}/{self.model}:generateContent"
        raw = await _request_json(self.name, url, payload, self.timeout,
                                  params={"key": self.api_key}, http_client=self.http_client)

        candidates = raw.get("candidates") or []
        if not candidates:
            raise APIError("Empty Gemini response", status_code=200, response_text=json.dumps(raw)[:500])
        content_parts = (candidates[0].get("content") or {}).get("parts") or []
        return "".join(part.get("text") or "" for part in content_parts)

    async def recognize_text(self, image_bytes: bytes, mime_type: str = 'image/jpeg') -> OCRResult:
        parts = [
            {"text": ExtractionPrompts.page_ocr()},
            {"inlineData": {"mimeType": mime_type, "data": base64.b64encode(image_bytes).decode('ascii')}},
        ]
        return _ocr_result(self.name, await self._generate(parts))

    async def structure(self, text: str, page_number: int) -> ArticleExtraction:
        prompt = ExtractionPrompts.article_structure(text, page_number) + ExtractionPrompts.json_only_suffix()
        return _article_result(self.name, await self._generate([{"text": prompt}], json_output=True))


class AnthropicProvider:
    """Anthropic messages API backend."""

    name = "anthropic"
    api_version = "2023-06-01"

    def __init__(self, api_key: str, config: Settings = default_settings,
                 http_client: Optional[AsyncHTTPClient] = None):
        self.api_key = api_key
        self.endpoint = config.anthropic_api_endpoint
        self.model = config.anthropic_model
        self.timeout = config.ai_timeout
        self.http_client = http_client

    async def _message(self, content: list) -> str:
        payload = {
            "model": self.model,
            "max_tokens": 4096,
            "messages": [{"role": "user", "content": content}],
        }
        headers = {
            'Content-Type': 'application/json',
            'x-api-key': self.api_key,
            'anthropic-version': self.api_version,
        }
        data = await _request_json(self.name, self.endpoint, payload, self.timeout,
                                   headers=headers, http_client=self.http_client)
        blocks = data.get('content') or []
        return "".join(block.get('text') or '' for block in blocks if block.get('type') == 'text')

    async def recognize_text(self, image_bytes: bytes, mime_type: str = 'image/jpeg') -> OCRResult:
        content = [
            {
                "type": "image",
                "source": {
                    "type": "base64",
                    "media_type": mime_type,
                    "data": base64.b64encode(image_bytes).decode('ascii'),
                },
            },
            {"type": "text", "text": ExtractionPrompts.page_ocr()},
        ]
        return _ocr_result(self.name, await self._message(content))

    async def structure(self, text: str, page_number: int) -> ArticleExtraction:
        prompt = ExtractionPrompts.article_structure(text, page_number) + ExtractionPrompts.json_only_suffix()
        return _article_result(self.name, await self._message([{"type": "text", "text": prompt}]))


ProviderFactory = Callable[..., ExtractionProvider]

PROVIDER_FACTORIES: Dict[str, ProviderFactory] = {
    OpenAIProvider.name: OpenAIProvider,
    GeminiProvider.name: GeminiProvider,
    AnthropicProvider.name: AnthropicProvider,
}
