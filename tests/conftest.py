"""
Shared fixtures: temporary SQLite databases, a deterministic stand-in for the
model service and an in-memory news source.
"""

import os
from dataclasses import asdict
from datetime import datetime, timezone
from typing import Dict, List, Optional
from unittest.mock import patch

import pytest

from news_rag.config import Config
from news_rag.enrichment.model_service import EnrichmentClient, EnrichmentResult, ModelUnavailable
from news_rag.ingestion.news_source import RawArticle, SourceUnavailable
from news_rag.storage.database import Database


class StubEnrichmentClient(EnrichmentClient):
    """Deterministic model service: canned results, scripted failures, call log."""

    def __init__(
        self,
        embeddings: Optional[Dict[str, List[float]]] = None,
        default_embedding: Optional[List[float]] = None,
        sentiment: str = 'neutral',
        fail_titles: Optional[set] = None,
        answer: str = 'stub answer'
    ):
        self.embeddings = embeddings or {}
        self.default_embedding = default_embedding or [1.0, 0.0, 0.0, 0.0]
        self.sentiment = sentiment
        self.fail_titles = fail_titles or set()
        self.answer = answer
        self.calls = []

    def summarize(self, title: str, body: str) -> EnrichmentResult:
        self.calls.append(('summarize', title))
        if title in self.fail_titles:
            raise ModelUnavailable(f"model failed for {title}")
        return EnrichmentResult(
            summary=f"Summary of {title}",
            sentiment=self.sentiment,
            embedding=self.embeddings.get(title, self.default_embedding)
        )

    def embed(self, text: str) -> List[float]:
        self.calls.append(('embed', text))
        return self.embeddings.get(text, self.default_embedding)

    def converse(self, question: str, context: str) -> str:
        self.calls.append(('converse', question, context))
        return self.answer


class StubNewsSource:
    """News source returning a fixed list of candidates."""

    def __init__(self, articles: Optional[List[RawArticle]] = None, fail: bool = False):
        self.articles = articles or []
        self.fail = fail

    def fetch_candidates(self) -> List[RawArticle]:
        if self.fail:
            raise SourceUnavailable("feed down")
        return list(self.articles)

    def fetch_raw(self):
        if self.fail:
            raise SourceUnavailable("feed down")
        return [asdict(article) for article in self.articles]


def make_article(article_id: int, title: Optional[str] = None, body: str = "Body text", **kwargs) -> RawArticle:
    return RawArticle(
        id=article_id,
        title=title if title is not None else f"Article {article_id}",
        body=body,
        thumbnail=kwargs.get('thumbnail', f"https://img.example.com/{article_id}.png"),
        published_at=kwargs.get('published_at', datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)),
        source=kwargs.get('source', 'CoinDesk'),
        tags=kwargs.get('tags', ['BTC', 'Market']),
        url=kwargs.get('url', f"https://news.example.com/{article_id}")
    )


@pytest.fixture
def config(tmp_path):
    """Config isolated from the caller's environment, backed by SQLite."""
    with patch.dict(os.environ, {}, clear=True):
        return Config(
            database_url=f"sqlite:///{tmp_path / 'news.db'}",
            model_base_url="http://model.test",
            model_timeout=5
        )


@pytest.fixture
def database(config):
    db = Database(config.database_url)
    db.create_tables()
    yield db
    db.dispose()


@pytest.fixture
def stub_client():
    return StubEnrichmentClient()
