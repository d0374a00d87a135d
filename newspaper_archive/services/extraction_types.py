"""Value types produced by the extraction oracle."""

import json
import re
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, List, Optional

HANGUL_RE = re.compile(r'[가-힣]')
LATIN_RE = re.compile(r'[A-Za-z]')


@dataclass
class OCRResult:
    """Recognized text of one page image."""
    text: str
    confidence: float
    language: str
    provider: Optional[str] = None


@dataclass
class EventExtraction:
    """A dated occurrence mentioned in an article."""
    type: str
    title: str
    description: str = ""
    date: Optional[date] = None
    location: Optional[str] = None
    participants: List[str] = field(default_factory=list)


@dataclass
class ArticleExtraction:
    """Structured article data for one page."""
    summary: str
    content: str
    title: Optional[str] = None
    article_type: Optional[str] = None
    author: Optional[str] = None
    events: List[EventExtraction] = field(default_factory=list)
    provider: Optional[str] = None


def detect_language(text: str) -> str:
    """Rough language tag from the script mix of the text."""
    hangul = len(HANGUL_RE.findall(text or ''))
    latin = len(LATIN_RE.findall(text or ''))
    if hangul == 0 and latin == 0:
        return 'und'
    return 'ko' if hangul >= latin else 'en'


def extract_json_from_response(response: str) -> str:
    """Extract JSON from AI response, handling markdown code blocks."""
    if not response:
        return '{}'

    text = response.strip()

    code_block_match = re.search(r'```(?:json)?\s*\n?([\s\S]*?)\n?```', text)
    if code_block_match:
        text = code_block_match.group(1).strip()

    if not text.startswith('{'):
        start_idx = text.find('{')
        end_idx = text.rfind('}')
        if start_idx != -1 and end_idx != -1 and end_idx > start_idx:
            text = text[start_idx:end_idx + 1]

    return text


def parse_json_object(response: str) -> Dict[str, Any]:
    """Parse a JSON object out of a model answer. Raises ValueError when there is none."""
    try:
        data = json.loads(response)
    except (json.JSONDecodeError, TypeError):
        data = json.loads(extract_json_from_response(response))
    if not isinstance(data, dict):
        raise ValueError("Model answer is not a JSON object")
    return data


def _clean_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def parse_event_date(value: Any) -> Optional[date]:
    """YYYY-MM-DD dates only; anything else is treated as unknown."""
    text = _clean_text(value)
    if not text:
        return None
    try:
        return datetime.strptime(text[:10], '%Y-%m-%d').date()
    except ValueError:
        return None


def _parse_participants(value: Any) -> List[str]:
    if not value:
        return []
    if isinstance(value, str):
        value = [part for part in re.split(r'[,、]', value)]
    if not isinstance(value, (list, tuple)):
        return []
    return [name for name in (_clean_text(item) for item in value) if name]


def parse_article_extraction(data: Dict[str, Any]) -> ArticleExtraction:
    """Build an ArticleExtraction from the model's JSON answer."""
    events = []
    for raw_event in data.get('events') or []:
        if not isinstance(raw_event, dict):
            continue
        title = _clean_text(raw_event.get('title'))
        event_type = _clean_text(raw_event.get('type'))
        if not title and not event_type:
            continue
        events.append(EventExtraction(
            type=event_type or '기타',
            title=title or event_type,
            description=_clean_text(raw_event.get('description')) or '',
            date=parse_event_date(raw_event.get('date')),
            location=_clean_text(raw_event.get('location')),
            participants=_parse_participants(raw_event.get('participants')),
        ))

    content = _clean_text(data.get('content')) or ''
    return ArticleExtraction(
        title=_clean_text(data.get('title')),
        summary=_clean_text(data.get('summary')) or '',
        content=content,
        article_type=_clean_text(data.get('articleType') or data.get('article_type') or data.get('category')),
        author=_clean_text(data.get('author')),
        events=events,
    )
