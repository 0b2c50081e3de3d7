"""
Similarity Retriever

Embeds a query through the model service and returns the closest enriched
articles, dropping anything beyond the relevance cutoff.
"""

import logging
from typing import List, Optional

import numpy as np

from ..enrichment.model_service import EnrichmentClient
from ..storage.article_store import ArticleStore, SimilarityResult
from ..storage.database import Database

logger = logging.getLogger(__name__)


def normalize_embedding(embedding) -> np.ndarray:
    """Scale a vector to unit length; zero vectors are returned unchanged."""
    vector = np.asarray(embedding, dtype=np.float64)
    norm = np.linalg.norm(vector)
    if norm > 0:
        vector = vector / norm
    return vector


class SimilarityRetriever:
    """Embedding search over the article store."""

    def __init__(
        self,
        enrichment_client: EnrichmentClient,
        database: Database,
        top_k: int = 5,
        distance_cutoff: float = 0.5
    ):
        """
        Initialize the retriever.

        Args:
            enrichment_client: Model service used to embed queries
            database: Database holding the articles
            top_k: Default number of candidates to fetch
            distance_cutoff: Largest cosine distance still considered relevant
        """
        self.enrichment_client = enrichment_client
        self.database = database
        self.top_k = top_k
        self.distance_cutoff = distance_cutoff

    def search(self, query_text: str, k: Optional[int] = None) -> List[SimilarityResult]:
        """
        Find stored articles relevant to a query.

        Args:
            query_text: Free-text query
            k: Number of candidates before the cutoff (default: top_k)

        Returns:
            Results within the cutoff, closest first. May be empty.

        Raises:
            ValueError: If the query is empty
            ModelUnavailable: If the query cannot be embedded
            PersistenceError: If the distance query fails
        """
        if not query_text or not query_text.strip():
            raise ValueError("Query cannot be empty")

        k = k if k is not None else self.top_k

        # Cosine distance ignores length; normalizing keeps the vector
        # comparable with however the stored embeddings were produced
        query_embedding = normalize_embedding(self.enrichment_client.embed(query_text))

        with self.database.unit_of_work() as session:
            candidates = ArticleStore(session).find_by_distance(query_embedding, k)

        logger.info(
            "Candidates before cutoff: %s",
            [(result.title, round(result.distance, 4)) for result in candidates]
        )

        results = [result for result in candidates if result.distance <= self.distance_cutoff]

        logger.info(
            f"{len(results)} of {len(candidates)} candidates within distance cutoff {self.distance_cutoff}"
        )
        return results
