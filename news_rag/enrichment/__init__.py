"""
Enrichment Module

Client for the external model service (summaries, sentiment, embeddings, chat).
"""

from .model_service import (
    EnrichmentClient,
    EnrichmentResult,
    ModelServiceClient,
    ModelUnavailable,
    EmbeddingDimensionError
)

__all__ = [
    'EnrichmentClient',
    'EnrichmentResult',
    'ModelServiceClient',
    'ModelUnavailable',
    'EmbeddingDimensionError'
]
