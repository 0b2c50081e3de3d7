"""
News Source Adapter

Fetches crypto news from the CryptoCompare feed and normalizes each record
into a RawArticle. Records without a usable title, body or id are dropped.
"""

import logging
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from typing import List, Dict, Optional, Any

import requests

logger = logging.getLogger(__name__)

DEFAULT_NEWS_API_URL = "https://min-api.cryptocompare.com/data/v2/news/?lang=EN"


class SourceUnavailable(Exception):
    """Raised when the news feed cannot be reached or does not return success."""
    pass


@dataclass
class RawArticle:
    """A validated candidate article as delivered by the feed."""
    id: int
    title: str
    body: str
    thumbnail: str = ""
    published_at: Optional[datetime] = None
    source: str = ""
    tags: List[str] = field(default_factory=list)
    url: str = ""

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['published_at'] = self.published_at.isoformat() if self.published_at else None
        return data


def parse_tags(raw_tags: Optional[str]) -> List[str]:
    """Split a pipe-delimited tag string, keeping order and dropping blanks."""
    if not isinstance(raw_tags, str):
        return []
    return [tag.strip() for tag in raw_tags.split('|') if tag.strip()]


def parse_published_on(value: Any) -> Optional[datetime]:
    """Convert epoch seconds to an aware UTC datetime."""
    if value is None or value == "":
        return None
    try:
        return datetime.fromtimestamp(int(value), tz=timezone.utc)
    except (TypeError, ValueError, OverflowError, OSError):
        return None


def _text(value: Any) -> str:
    """Stripped string for text fields; anything that is not a string is empty."""
    return value.strip() if isinstance(value, str) else ''


def parse_article_id(value: Any) -> Optional[int]:
    """Feed ids arrive as strings or numbers."""
    if isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


class CryptoNewsSource:
    """Adapter over the CryptoCompare news endpoint."""

    def __init__(self, api_url: Optional[str] = None, timeout: int = 30):
        """
        Initialize the news source.

        Args:
            api_url: Feed endpoint (default: CryptoCompare English news)
            timeout: Request timeout in seconds
        """
        self.api_url = api_url or DEFAULT_NEWS_API_URL
        self.timeout = timeout

    def _request_feed(self) -> List[Dict[str, Any]]:
        """GET the feed and return its Data list."""
        try:
            response = requests.get(self.api_url, timeout=self.timeout)
            response.raise_for_status()
        except requests.exceptions.Timeout:
            raise SourceUnavailable(
                f"News feed request timed out after {self.timeout}s"
            )
        except requests.exceptions.HTTPError as e:
            raise SourceUnavailable(
                f"News feed returned HTTP {e.response.status_code if e.response is not None else 'error'}"
            )
        except requests.exceptions.RequestException as e:
            raise SourceUnavailable(f"Unable to reach news feed at {self.api_url}: {e}")

        try:
            payload = response.json()
        except ValueError:
            raise SourceUnavailable("News feed returned a non-JSON body")

        data = payload.get('Data') if isinstance(payload, dict) else None
        if not isinstance(data, list):
            logger.warning("News feed response has no Data list, treating as empty")
            return []
        return data

    @staticmethod
    def normalize(item: Dict[str, Any]) -> Dict[str, Any]:
        """
        Extract the fields we keep from one feed record.

        Args:
            item: Raw feed element

        Returns:
            Dictionary with id, title, body, thumbnail, published_at,
            source, tags and url
        """
        source_info = item.get('source_info')
        if not isinstance(source_info, dict):
            source_info = {}
        return {
            'id': parse_article_id(item.get('id')),
            'title': _text(item.get('title')),
            'body': _text(item.get('body')),
            'thumbnail': _text(item.get('imageurl')),
            'published_at': parse_published_on(item.get('published_on')),
            'source': _text(source_info.get('name')),
            'tags': parse_tags(item.get('tags')),
            'url': _text(item.get('url')),
        }

    def fetch_raw(self) -> List[Dict[str, Any]]:
        """
        Fetch and normalize feed records without validating them.

        Raises:
            SourceUnavailable: If the feed call fails
        """
        return [self.normalize(item) for item in self._request_feed() if isinstance(item, dict)]

    def fetch_candidates(self) -> List[RawArticle]:
        """
        Fetch feed records and keep the ones usable for ingestion.

        Returns:
            Candidates in feed order

        Raises:
            SourceUnavailable: If the feed call fails
        """
        candidates = []
        dropped = 0

        for record in self.fetch_raw():
            if record['id'] is None or not record['title'] or not record['body']:
                dropped += 1
                logger.debug(f"Dropping feed record without id/title/body: {record.get('url')}")
                continue
            candidates.append(RawArticle(**record))

        logger.info(f"Fetched {len(candidates)} candidates ({dropped} dropped by validation)")
        return candidates
