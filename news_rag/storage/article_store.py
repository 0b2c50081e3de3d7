"""
Article Store

Relational persistence for news articles and their enrichment. Every method
runs on the session it was built with, so the caller's unit of work decides
what is committed together.

Distances are cosine distances (0 = same direction, 2 = opposite). The same
metric is used for stored article embeddings and query embeddings; changing
it would require re-embedding every row.
"""

import functools
import logging
import math
from dataclasses import dataclass, field, asdict
from datetime import datetime
from typing import List, Dict, Optional, Any, Sequence

import numpy as np
from sqlalchemy import delete, func, insert, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .database import PersistenceError
from .models import Article, SENTIMENTS

logger = logging.getLogger(__name__)

DISTANCE_METRIC = "cosine"


class ArticleNotFoundError(PersistenceError):
    """Raised when an operation targets an article id that is not stored."""
    pass


@dataclass
class SimilarityResult:
    """An article projection annotated with its distance to a query."""
    id: int
    title: str
    summary: Optional[str]
    content: str
    thumbnail: str
    sentiment: Optional[str]
    tags: List[str] = field(default_factory=list)
    url: Optional[str] = None
    published_at: Optional[datetime] = None
    source: str = ""
    views: int = 0
    distance: float = 0.0

    @classmethod
    def from_article(cls, article: Article, distance: float) -> "SimilarityResult":
        return cls(
            id=article.id,
            title=article.title,
            summary=article.summary,
            content=article.content,
            thumbnail=article.thumbnail,
            sentiment=article.sentiment,
            tags=list(article.tags or []),
            url=article.url,
            published_at=article.published_at,
            source=article.source,
            views=article.views or 0,
            distance=clamp_distance(distance),
        )

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['published_at'] = self.published_at.isoformat() if self.published_at else None
        return data


def clamp_distance(distance) -> float:
    """
    Keep a distance within [0, 2].

    Zero-length vectors have no direction: pgvector reports NaN for them and
    they count as 1.0, matching cosine_distances.
    """
    distance = float(distance)
    if math.isnan(distance):
        return 1.0
    return min(max(distance, 0.0), 2.0)


def article_to_dict(article: Article) -> Dict[str, Any]:
    """Serialize an article for display, leaving the embedding out."""
    return {
        'id': article.id,
        'title': article.title,
        'summary': article.summary,
        'content': article.content,
        'thumbnail': article.thumbnail,
        'sentiment': article.sentiment,
        'tags': list(article.tags or []),
        'url': article.url,
        'published_at': article.published_at.isoformat() if article.published_at else None,
        'source': article.source,
        'views': article.views or 0,
    }


def cosine_distances(matrix: np.ndarray, query: np.ndarray) -> np.ndarray:
    """
    Cosine distance between each row of matrix and query.

    Zero-length vectors have no direction and get distance 1.0.
    """
    row_norms = np.linalg.norm(matrix, axis=1)
    query_norm = np.linalg.norm(query)
    denominator = row_norms * query_norm
    similarity = np.divide(
        matrix @ query,
        denominator,
        out=np.zeros(len(matrix), dtype=np.float64),
        where=denominator > 0
    )
    return np.clip(1.0 - similarity, 0.0, 2.0)


def insert_ignore_statement(dialect: str, values: Dict[str, Any]):
    """
    INSERT ... ON CONFLICT (id) DO NOTHING for dialects that support it.

    Returns None for other dialects; callers fall back to get-then-insert.
    """
    if dialect == 'postgresql':
        return pg_insert(Article).values(**values).on_conflict_do_nothing(index_elements=['id'])
    if dialect == 'sqlite':
        return sqlite_insert(Article).values(**values).on_conflict_do_nothing(index_elements=['id'])
    return None


def pgvector_distance_statement(query: Sequence[float], k: int):
    """Select the k nearest embedded articles with their cosine distance, computed in SQL."""
    # pgvector's <=> operator is cosine distance
    distance = Article.embedding.cosine_distance([float(value) for value in query]).label('distance')
    return (
        select(Article, distance)
        .where(Article.embedding.is_not(None))
        .order_by(distance, Article.created_at, Article.id)
        .limit(k)
    )


def _translate_errors(method):
    """Re-raise SQLAlchemy errors from store methods as PersistenceError."""
    @functools.wraps(method)
    def wrapper(*args, **kwargs):
        try:
            return method(*args, **kwargs)
        except SQLAlchemyError as e:
            raise PersistenceError(f"{method.__name__} failed: {e}") from e
    return wrapper


class ArticleStore:
    """Data access for the news table, bound to one session."""

    def __init__(self, session: Session):
        self.session = session

    @property
    def dialect(self) -> str:
        return self.session.get_bind().dialect.name

    @_translate_errors
    def upsert_raw(self, article) -> bool:
        """
        Insert an article's raw fields unless its id is already stored.

        Existing rows are never modified.

        Args:
            article: RawArticle (or any object with the same attributes)

        Returns:
            True if a new row was inserted, False if the id already existed
        """
        values = {
            'id': article.id,
            'title': article.title,
            'content': article.body,
            'thumbnail': article.thumbnail or '',
            'published_at': article.published_at,
            'source': article.source or '',
            'tags': list(article.tags or []),
            'url': article.url,
            'views': 0,
        }

        stmt = insert_ignore_statement(self.dialect, values)
        if stmt is None:
            if self.session.get(Article, article.id) is not None:
                return False
            stmt = insert(Article).values(**values)

        result = self.session.execute(stmt)
        inserted = result.rowcount == 1
        logger.debug(f"upsert_raw id={article.id} inserted={inserted}")
        return inserted

    @_translate_errors
    def is_enriched(self, article_id: int) -> bool:
        stmt = select(Article.id).where(
            Article.id == article_id,
            Article.embedding.is_not(None),
            Article.summary.is_not(None),
            Article.sentiment.is_not(None),
        )
        return self.session.execute(stmt).first() is not None

    @_translate_errors
    def apply_enrichment(
        self,
        article_id: int,
        summary: str,
        sentiment: str,
        embedding: Sequence[float]
    ) -> None:
        """
        Store summary, sentiment and embedding on an existing article.

        Raises:
            ValueError: If sentiment is not a known label
            ArticleNotFoundError: If no article has this id
        """
        if sentiment not in SENTIMENTS:
            raise ValueError(f"Unknown sentiment label: {sentiment!r}")

        article = self.session.get(Article, article_id)
        if article is None:
            raise ArticleNotFoundError(f"Article {article_id} not found")

        article.summary = summary
        article.sentiment = sentiment
        article.embedding = [float(value) for value in embedding]
        self.session.flush()

    @_translate_errors
    def find_by_distance(self, query_embedding: Sequence[float], k: int) -> List[SimilarityResult]:
        """
        Find the k stored articles closest to a query embedding.

        Only rows with an embedding take part. Results are ordered by
        ascending cosine distance, ties by stored order.

        Args:
            query_embedding: Query vector
            k: Maximum number of results

        Returns:
            List of SimilarityResult, closest first
        """
        if k < 0:
            raise ValueError(f"k must be non-negative, got {k}")
        if k == 0:
            return []

        query = np.asarray(query_embedding, dtype=np.float64)

        if self.dialect == 'postgresql':
            return self._find_by_distance_pgvector(query, k)
        return self._find_by_distance_in_memory(query, k)

    def _find_by_distance_pgvector(self, query: np.ndarray, k: int) -> List[SimilarityResult]:
        stmt = pgvector_distance_statement(query, k)
        results = [
            SimilarityResult.from_article(article, dist)
            for article, dist in self.session.execute(stmt).all()
        ]
        # PostgreSQL sorts NaN after every number; once mapped to 1.0 those
        # rows have to move back in line
        return sorted(results, key=lambda result: result.distance)

    def _find_by_distance_in_memory(self, query: np.ndarray, k: int) -> List[SimilarityResult]:
        stmt = (
            select(Article)
            .where(Article.embedding.is_not(None))
            .order_by(Article.created_at, Article.id)
        )
        articles = [
            article for article in self.session.execute(stmt).scalars().all()
            if article.embedding is not None and len(article.embedding) == len(query)
        ]
        if not articles:
            return []

        matrix = np.asarray([article.embedding for article in articles], dtype=np.float64)
        distances = cosine_distances(matrix, query)

        # Stable sort keeps stored order among equal distances
        order = np.argsort(distances, kind='stable')[:k]
        return [SimilarityResult.from_article(articles[i], distances[i]) for i in order]

    @_translate_errors
    def increment_views(self, article_id: int) -> bool:
        stmt = update(Article).where(Article.id == article_id).values(views=Article.views + 1)
        return self.session.execute(stmt).rowcount == 1

    @_translate_errors
    def list_all(self) -> List[Article]:
        stmt = select(Article).order_by(Article.published_at.desc(), Article.id.desc())
        return list(self.session.execute(stmt).scalars().all())

    @_translate_errors
    def get_by_id(self, article_id: int) -> Optional[Article]:
        return self.session.get(Article, article_id)

    @_translate_errors
    def delete_all(self) -> int:
        """Delete every article. Returns the number of rows removed."""
        result = self.session.execute(delete(Article))
        self.session.expunge_all()
        return result.rowcount

    @_translate_errors
    def count(self) -> int:
        return self.session.execute(select(func.count(Article.id))).scalar_one()

    @_translate_errors
    def sentiment_stats(self, since: datetime) -> Dict[str, int]:
        """Count articles per sentiment label published since a point in time."""
        stmt = (
            select(Article.sentiment, func.count(Article.id))
            .where(Article.published_at >= since, Article.sentiment.is_not(None))
            .group_by(Article.sentiment)
        )
        stats = {label: 0 for label in SENTIMENTS}
        for sentiment, count in self.session.execute(stmt).all():
            stats[sentiment] = count
        return stats

    @_translate_errors
    def recent_polarized(self, since: datetime, limit: int = 20) -> List[Article]:
        """Positive and negative articles published since a point in time, newest first."""
        stmt = (
            select(Article)
            .where(
                Article.sentiment.in_(('positive', 'negative')),
                Article.published_at >= since
            )
            .order_by(Article.published_at.desc())
            .limit(limit)
        )
        return list(self.session.execute(stmt).scalars().all())
