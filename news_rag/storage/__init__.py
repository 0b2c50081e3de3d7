"""
Storage Module

Relational persistence for articles, enrichment and embedding search.
"""

from .database import Base, Database, PersistenceError
from .models import Article
from .article_store import ArticleStore, ArticleNotFoundError, SimilarityResult

__all__ = [
    'Base',
    'Database',
    'PersistenceError',
    'Article',
    'ArticleStore',
    'ArticleNotFoundError',
    'SimilarityResult'
]
