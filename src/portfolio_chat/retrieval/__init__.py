from portfolio_chat.retrieval.cache import CacheEntry, RetrievalCache, make_cache_key
from portfolio_chat.retrieval.embeddings import EmbeddingService, OpenAIEmbeddingService
from portfolio_chat.retrieval.retriever import Retriever, citations, format_context_block
from portfolio_chat.retrieval.vector_search import DisabledSearch, HttpVectorSearch, RetrievedDocument, SimilaritySearch

__all__ = [
    "CacheEntry",
    "DisabledSearch",
    "EmbeddingService",
    "HttpVectorSearch",
    "OpenAIEmbeddingService",
    "RetrievalCache",
    "RetrievedDocument",
    "Retriever",
    "SimilaritySearch",
    "citations",
    "format_context_block",
    "make_cache_key",
]
