"""
Main Pipeline System

Wires every component from one Config and exposes the operations callers
use: raw fetch, ingestion batches, similarity search, chat answers, article
reads, sentiment statistics and the bulk purge.
"""

import logging
import warnings
from datetime import datetime, timedelta, timezone
from typing import List, Dict, Optional, Any

from .config import Config, get_config
from .enrichment.model_service import EnrichmentClient, ModelServiceClient
from .ingestion.news_source import CryptoNewsSource
from .ingestion.orchestrator import BatchReport, IngestionOrchestrator, IngestionWarning
from .query.chat import ChatAnswerer
from .query.retriever import SimilarityRetriever
from .storage.article_store import DISTANCE_METRIC, ArticleStore, article_to_dict
from .storage.database import Database

SENTIMENT_RANGES = {
    '24h': timedelta(hours=24),
    '7d': timedelta(days=7),
    '30d': timedelta(days=30),
}


class NewsRAGSystem:
    """
    Main pipeline system that integrates all components.

    Provides high-level methods for:
    - News ingestion with per-article enrichment
    - Similarity search and RAG-based Q&A
    - Article reads, view counting and purge
    - Sentiment statistics
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        database: Optional[Database] = None,
        news_source: Optional[CryptoNewsSource] = None,
        enrichment_client: Optional[EnrichmentClient] = None,
        create_tables: bool = True,
        log_level: int = logging.INFO
    ):
        """
        Initialize the system.

        Args:
            config: Configuration (default: global config from environment)
            database: Database instance (or None to build from config)
            news_source: News feed adapter (or None for default)
            enrichment_client: Model service client (or None for default)
            create_tables: Create the schema if it does not exist
            log_level: Logging level
        """
        self._setup_logging(log_level)

        self.config = config or get_config()

        # Initialize components (dependency injection or defaults)
        self.database = database or Database(self.config.database_url, echo=self.config.database_echo)
        self.news_source = news_source or CryptoNewsSource(
            api_url=self.config.news_api_url,
            timeout=self.config.news_api_timeout
        )
        self.enrichment_client = enrichment_client or ModelServiceClient.from_config(self.config)

        self.orchestrator = IngestionOrchestrator(
            news_source=self.news_source,
            enrichment_client=self.enrichment_client,
            database=self.database,
            max_items_per_run=self.config.max_items_per_run
        )
        self.retriever = SimilarityRetriever(
            enrichment_client=self.enrichment_client,
            database=self.database,
            top_k=self.config.top_k_default,
            distance_cutoff=self.config.distance_cutoff
        )
        self.chat = ChatAnswerer(
            retriever=self.retriever,
            enrichment_client=self.enrichment_client,
            top_k=self.config.top_k_default
        )

        if create_tables:
            self.database.create_tables()

        self.logger.info("NewsRAGSystem initialized successfully")

    def _setup_logging(self, log_level: int):
        """Configure logging for the system."""
        self.logger = logging.getLogger(__name__)
        self.logger.setLevel(log_level)

        if not self.logger.handlers:
            handler = logging.StreamHandler()
            formatter = logging.Formatter(
                '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
            )
            handler.setFormatter(formatter)
            self.logger.addHandler(handler)

    def fetch_and_return_raw(self) -> List[Dict[str, Any]]:
        """Fetch the feed and return normalized records without storing anything."""
        records = self.news_source.fetch_raw()
        for record in records:
            published_at = record.get('published_at')
            record['published_at'] = published_at.isoformat() if published_at else None
        return records

    def run_ingestion_batch(self, show_progress: bool = False) -> BatchReport:
        """
        Run one best-effort ingestion batch.

        Issues an IngestionWarning when candidates were fetched but none
        were ingested; the report is returned either way.

        Raises:
            SourceUnavailable: If the feed could not be fetched
        """
        report = self.orchestrator.run_batch(show_progress=show_progress)

        if report.fetched and not (report.updated or report.skipped):
            warnings.warn(
                f"Ingestion batch stored nothing: {report.failed} of {report.processed} articles failed",
                IngestionWarning,
                stacklevel=2
            )
        return report

    def search(self, question: str, k: Optional[int] = None) -> List[Dict[str, Any]]:
        """
        Similarity search returning the fields shown as chat context.

        Returns:
            List of {title, summary, tags, published_at, distance}, closest first
        """
        results = self.retriever.search(question, k=k)
        return [
            {
                'title': result.title,
                'summary': result.summary,
                'tags': result.tags,
                'published_at': result.published_at.isoformat() if result.published_at else None,
                'distance': result.distance,
            }
            for result in results
        ]

    def answer(self, question: str) -> Dict[str, Any]:
        """
        Answer a question with retrieved context.

        Returns:
            Dictionary with question, answer, context, context_used
            (serialized results) and response_time
        """
        result = self.chat.answer(question)
        result['context_used'] = [item.to_dict() for item in result['context_used']]
        return result

    def list_articles(self) -> List[Dict[str, Any]]:
        with self.database.unit_of_work() as session:
            return [article_to_dict(article) for article in ArticleStore(session).list_all()]

    def get_article(self, article_id: int, count_view: bool = True) -> Optional[Dict[str, Any]]:
        """Return one article, counting the read as a view unless told otherwise."""
        with self.database.unit_of_work() as session:
            store = ArticleStore(session)
            if count_view:
                store.increment_views(article_id)
            article = store.get_by_id(article_id)
            return article_to_dict(article) if article is not None else None

    def purge_all(self) -> int:
        with self.database.unit_of_work() as session:
            deleted = ArticleStore(session).delete_all()
        self.logger.info(f"Purged {deleted} articles")
        return deleted

    def sentiment_stats(self, range_name: str = '24h', now: Optional[datetime] = None) -> Dict[str, int]:
        """
        Count positive, negative and neutral articles in a recent window.

        Args:
            range_name: One of '24h', '7d', '30d' (unknown values mean '24h')
            now: Reference time (default: current UTC time)
        """
        window = SENTIMENT_RANGES.get(range_name, SENTIMENT_RANGES['24h'])
        since = (now or datetime.now(timezone.utc)) - window
        with self.database.unit_of_work() as session:
            return ArticleStore(session).sentiment_stats(since)

    def sentiment_news(self, limit: int = 20, now: Optional[datetime] = None) -> List[Dict[str, Any]]:
        """Positive and negative articles from the last 24 hours, newest first."""
        since = (now or datetime.now(timezone.utc)) - SENTIMENT_RANGES['24h']
        with self.database.unit_of_work() as session:
            return [
                {
                    'id': article.id,
                    'title': article.title,
                    'sentiment': article.sentiment,
                    'published_at': article.published_at.isoformat() if article.published_at else None,
                }
                for article in ArticleStore(session).recent_polarized(since, limit=limit)
            ]

    def get_stats(self) -> Dict[str, Any]:
        with self.database.unit_of_work() as session:
            total = ArticleStore(session).count()
        return {
            'total_articles': total,
            'database_dialect': self.database.dialect,
            'distance_metric': DISTANCE_METRIC,
            'model_base_url': getattr(self.enrichment_client, 'base_url', None),
            **self.config.get_pipeline_config(),
        }
