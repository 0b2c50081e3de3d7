"""
Chat Answerer

Retrieval-augmented answering: find relevant articles, fold their titles
and summaries into one context string and hand it to the model service's
chat endpoint together with the question.
"""

import time
import logging
from typing import List, Dict, Any

from ..enrichment.model_service import EnrichmentClient
from ..storage.article_store import SimilarityResult
from .retriever import SimilarityRetriever

logger = logging.getLogger(__name__)


class ChatAnswerer:
    """Answers questions over the enriched article corpus."""

    def __init__(
        self,
        retriever: SimilarityRetriever,
        enrichment_client: EnrichmentClient,
        top_k: int = 5
    ):
        self.retriever = retriever
        self.enrichment_client = enrichment_client
        self.top_k = top_k

    @staticmethod
    def build_context(results: List[SimilarityResult]) -> str:
        """
        Format retrieved articles as prompt context.

        Each article contributes its title and summary; articles are
        separated by a blank line and kept in ascending-distance order.
        """
        parts = []
        for result in results:
            parts.append(f"{result.title}\n{result.summary or ''}".rstrip())
        return "\n\n".join(parts)

    def answer(self, question: str) -> Dict[str, Any]:
        """
        Answer a question using retrieved context.

        An empty retrieval still goes to the chat endpoint, with an empty
        context string.

        Args:
            question: User's question

        Returns:
            Dictionary with:
                - question: Original question
                - answer: Generated answer
                - context: Context string sent to the model
                - context_used: Retrieved results the context was built from
                - response_time: Seconds taken

        Raises:
            ValueError: If question is empty
            ModelUnavailable: If embedding or chat calls fail
        """
        if not question or not question.strip():
            raise ValueError("Question cannot be empty")

        start_time = time.time()

        results = self.retriever.search(question, k=self.top_k)
        context = self.build_context(results)

        if not results:
            logger.info("No relevant articles found, answering without context")

        answer = self.enrichment_client.converse(question, context)

        return {
            'question': question,
            'answer': answer,
            'context': context,
            'context_used': results,
            'response_time': time.time() - start_time
        }
