"""
Ingestion Orchestrator

Runs one ingestion batch: fetch candidates, then for each article in feed
order insert its raw fields and enrich it inside a unit of work of its own.
A failing article is rolled back (raw insert included) and the batch moves
on, so one hung or broken model call never discards the rest of the run.
Articles rolled back here look new again on the next run and are retried
then; there is no retry inside a run.
"""

import time
import logging
from dataclasses import dataclass, field
from typing import List, Dict, Optional, Any

from tqdm import tqdm

from .news_source import CryptoNewsSource, RawArticle
from ..enrichment.model_service import EnrichmentClient, ModelUnavailable
from ..storage.article_store import ArticleStore
from ..storage.database import Database, PersistenceError

logger = logging.getLogger(__name__)

UPDATED = 'updated'
SKIPPED = 'skipped'
FAILED = 'failed'


class IngestionWarning(UserWarning):
    """Issued when a batch had candidates but none of them were ingested."""
    pass


@dataclass
class ArticleOutcome:
    """Terminal state of one article within a batch."""
    article_id: int
    title: str
    status: str
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'article_id': self.article_id,
            'title': self.title,
            'status': self.status,
            'error': self.error,
        }


@dataclass
class BatchReport:
    """Summary of one orchestrator run."""
    fetched: int = 0
    processed: int = 0
    outcomes: List[ArticleOutcome] = field(default_factory=list)
    processing_time: float = 0.0

    def _count(self, status: str) -> int:
        return sum(1 for outcome in self.outcomes if outcome.status == status)

    @property
    def updated(self) -> int:
        return self._count(UPDATED)

    @property
    def skipped(self) -> int:
        return self._count(SKIPPED)

    @property
    def failed(self) -> int:
        return self._count(FAILED)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'fetched': self.fetched,
            'processed': self.processed,
            'updated': self.updated,
            'skipped': self.skipped,
            'failed': self.failed,
            'processing_time': self.processing_time,
            'details': [outcome.to_dict() for outcome in self.outcomes],
        }


class IngestionOrchestrator:
    """Drives fetch → insert → enrich → update for one batch at a time."""

    def __init__(
        self,
        news_source: CryptoNewsSource,
        enrichment_client: EnrichmentClient,
        database: Database,
        max_items_per_run: int = 20
    ):
        """
        Initialize the orchestrator.

        Args:
            news_source: Adapter providing validated candidates
            enrichment_client: Model service used to enrich each article
            database: Database providing per-article units of work
            max_items_per_run: Cap on articles processed per batch
        """
        if max_items_per_run <= 0:
            raise ValueError(f"max_items_per_run must be positive, got {max_items_per_run}")

        self.news_source = news_source
        self.enrichment_client = enrichment_client
        self.database = database
        self.max_items_per_run = max_items_per_run

    def ingest_article(self, article: RawArticle) -> str:
        """
        Insert and enrich one article as a single unit of work.

        An id that is already stored and enriched is skipped without
        calling the model service. A stored id that still lacks
        enrichment is enriched now.

        Returns:
            UPDATED or SKIPPED

        Raises:
            ModelUnavailable: If the model call fails (the unit is rolled back)
            PersistenceError: If a statement or the commit fails (rolled back)
        """
        with self.database.unit_of_work() as session:
            store = ArticleStore(session)

            inserted = store.upsert_raw(article)
            if not inserted and store.is_enriched(article.id):
                logger.debug(f"Article {article.id} already enriched, skipping")
                return SKIPPED

            enrichment = self.enrichment_client.summarize(article.title, article.body)
            store.apply_enrichment(
                article.id,
                enrichment.summary,
                enrichment.sentiment,
                enrichment.embedding
            )

        return UPDATED

    def run_batch(self, show_progress: bool = False) -> BatchReport:
        """
        Run one ingestion batch.

        Per-article failures are logged and recorded in the report; they
        never abort the batch.

        Args:
            show_progress: Show a progress bar

        Returns:
            BatchReport for this run

        Raises:
            SourceUnavailable: If the feed could not be fetched
        """
        start_time = time.time()
        report = BatchReport()

        candidates = self.news_source.fetch_candidates()
        report.fetched = len(candidates)

        if not candidates:
            logger.info("No valid candidates fetched, nothing to ingest")
            report.processing_time = time.time() - start_time
            return report

        if len(candidates) > self.max_items_per_run:
            logger.info(
                f"Truncating batch from {len(candidates)} to {self.max_items_per_run} articles"
            )
            candidates = candidates[:self.max_items_per_run]

        iterator = tqdm(candidates, desc="Ingesting articles") if show_progress else candidates

        for article in iterator:
            report.processed += 1
            try:
                status = self.ingest_article(article)
                report.outcomes.append(ArticleOutcome(article.id, article.title, status))
            except ModelUnavailable as e:
                logger.error(f"Enrichment failed for article {article.id}: {e}")
                report.outcomes.append(ArticleOutcome(article.id, article.title, FAILED, str(e)))
            except PersistenceError as e:
                logger.error(f"Persistence failed for article {article.id}: {e}")
                report.outcomes.append(ArticleOutcome(article.id, article.title, FAILED, str(e)))
            except Exception as e:
                logger.exception(f"Unexpected error ingesting article {article.id}")
                report.outcomes.append(ArticleOutcome(article.id, article.title, FAILED, str(e)))

        report.processing_time = time.time() - start_time
        logger.info(
            f"Batch finished: {report.updated} updated, {report.skipped} skipped, "
            f"{report.failed} failed in {report.processing_time:.2f}s"
        )
        return report
