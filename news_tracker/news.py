"""
External news headlines for a location.

Uses the NewsAPI `everything` endpoint. Failures never propagate: the
client returns an empty list and the composer carries on without
headlines.
"""

import logging
import os
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

import httpx

from .memory.types import parse_datetime, utc_now


logger = logging.getLogger(__name__)


NEWS_API_URL = "https://newsapi.org/v2/everything"


@dataclass
class NewsArticle:
    """A single external headline."""

    title: str
    published_at: Optional[datetime] = None
    url: Optional[str] = None
    source: str = "News Source"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "published_at": self.published_at.isoformat() if self.published_at else None,
            "url": self.url,
            "source": self.source,
        }

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "NewsArticle":
        """Build from one NewsAPI article object."""
        source = data.get("source")
        try:
            published_at = parse_datetime(data.get("publishedAt"))
        except (ValueError, TypeError):
            published_at = None
        return cls(
            title=data.get("title") or "Untitled",
            published_at=published_at,
            url=data.get("url"),
            source=(source.get("name") if isinstance(source, dict) else None) or "News Source",
        )


def format_headlines(articles: List[NewsArticle]) -> str:
    """Render headlines as the numbered list shown next to an answer."""
    text = "Latest news about this location:\n\n"
    if not articles:
        return text + "No recent news articles found for this location."
    for index, article in enumerate(articles, start=1):
        date = article.published_at.strftime("%Y-%m-%d") if article.published_at else "undated"
        text += f"{index}. {article.title} ({date}) - {article.source}\n"
    return text


def headlines_context(location: str, articles: List[NewsArticle]) -> str:
    """Compact headline list for use inside a prompt."""
    if not articles:
        return ""
    lines = [
        f"- {a.title} ({a.published_at.strftime('%Y-%m-%d') if a.published_at else 'undated'})"
        for a in articles
    ]
    return f"Recent external news about {location}:\n" + "\n".join(lines)


class NewsClient:
    """
    Fetches recent headlines mentioning a location.

    Without an API key a single placeholder headline is returned so the
    answer layout stays the same in development.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        page_size: int = 7,
        timeout: float = 5.0,
        base_url: str = NEWS_API_URL,
        client: Optional[httpx.Client] = None,
    ):
        self.api_key = api_key if api_key is not None else os.environ.get("NEWS_API_KEY", "")
        self.page_size = page_size
        self.timeout = timeout
        self.base_url = base_url
        self._client = client

    def _get_client(self) -> httpx.Client:
        if self._client is None:
            self._client = httpx.Client(timeout=self.timeout)
        return self._client

    def fetch_headlines(self, location: str) -> List[NewsArticle]:
        """
        Recent headlines for a location, newest first.

        Args:
            location: Free-text location used as the search query

        Returns:
            Up to `page_size` articles; empty on any failure
        """
        if not self.api_key:
            logger.warning("No NEWS_API_KEY provided, using mock news")
            return [
                NewsArticle(
                    title=f"Local authorities report on {location} situation",
                    published_at=utc_now(),
                    url="#",
                )
            ]

        try:
            response = self._get_client().get(
                self.base_url,
                params={
                    "q": location,
                    "sortBy": "publishedAt",
                    "language": "en",
                    "pageSize": self.page_size,
                    "apiKey": self.api_key,
                },
                timeout=self.timeout,
            )
            response.raise_for_status()
            articles = response.json().get("articles") or []
            return [
                NewsArticle.from_api(article)
                for article in articles[:self.page_size]
                if isinstance(article, dict)
            ]
        except httpx.HTTPError as e:
            logger.warning(f"Error fetching news for {location}: {e}")
            return []
        except (ValueError, TypeError, AttributeError, KeyError) as e:
            logger.warning(f"Malformed news response for {location}: {e}")
            return []

    def close(self):
        if self._client is not None:
            self._client.close()
            self._client = None
