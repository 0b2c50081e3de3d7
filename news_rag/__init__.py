"""
Crypto News RAG

Ingests crypto news, enriches each article with a summary, sentiment label
and embedding from an external model service, stores the results and
answers questions over them with retrieval-augmented generation.
"""

__version__ = "0.1.0"
