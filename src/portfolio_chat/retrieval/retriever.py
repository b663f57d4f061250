from __future__ import annotations

from loguru import logger

from portfolio_chat.retrieval.cache import RetrievalCache, make_cache_key
from portfolio_chat.retrieval.embeddings import EmbeddingService
from portfolio_chat.retrieval.vector_search import RetrievedDocument, SimilaritySearch

DEFAULT_TOP_K = 8


class EmbeddingUnavailableError(RuntimeError):
    pass


class Retriever:
    """Embeds a query and runs the similarity search behind the retrieval cache.

    Every failure here degrades to "no context"; retrieval never fails a request.
    """

    def __init__(
        self,
        embeddings: EmbeddingService,
        search: SimilaritySearch,
        cache: RetrievalCache[list[RetrievedDocument]],
        *,
        top_k: int = DEFAULT_TOP_K,
    ):
        self._embeddings = embeddings
        self._search = search
        self._cache = cache
        self._top_k = top_k

    async def retrieve(self, query: str, entity_filter: str | None = None) -> list[RetrievedDocument]:
        key = make_cache_key(query, entity_filter)

        async def fetch() -> list[RetrievedDocument]:
            vectors = await self._embeddings.embed([query])
            if not vectors:
                raise EmbeddingUnavailableError("Embedding service returned no vector")
            return await self._search.search(vectors[0], self._top_k, entity_filter)

        try:
            return await self._cache.get_or_fetch(key, fetch)
        except EmbeddingUnavailableError:
            logger.warning("Failed to generate embedding for query; answering without retrieved context")
            return []
        except Exception as ex:
            logger.warning(f"Retrieval failed ({type(ex).__name__}: {ex}); answering without retrieved context")
            return []


def format_context_block(documents: list[RetrievedDocument]) -> str | None:
    if not documents:
        return None
    sections = []
    for doc in documents:
        sections.append(
            "---\n"
            f"File: {doc.repo}/{doc.path}\n"
            f"URL: {doc.url}\n"
            f"Type: {doc.type}\n"
            "Content:\n"
            f"{doc.content}\n"
            "---"
        )
    return "\n".join(sections)


def citations(documents: list[RetrievedDocument]) -> list[dict[str, str]]:
    return [doc.citation() for doc in documents]
