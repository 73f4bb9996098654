"""Retrieval module: query preprocessing and hybrid search."""

from .query_preprocessor import preprocess_query
from .hybrid_search import HybridRetriever, reciprocal_rank_fusion
from .retriever import DocumentSearch, format_search_context, results_to_sources

__all__ = [
    "preprocess_query",
    "HybridRetriever",
    "reciprocal_rank_fusion",
    "DocumentSearch",
    "format_search_context",
    "results_to_sources",
]
