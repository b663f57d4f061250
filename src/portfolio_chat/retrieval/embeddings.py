from __future__ import annotations

from typing import Protocol, runtime_checkable

import openai
from loguru import logger
from tenacity import retry

from portfolio_chat.retry_policy import default_retry_kwargs

DEFAULT_EMBEDDING_MODEL = "text-embedding-3-small"


@runtime_checkable
class EmbeddingService(Protocol):
    async def embed(self, texts: list[str]) -> list[list[float]] | None:
        """Return one vector per text, or None when embeddings are unavailable."""
        ...


class OpenAIEmbeddingService:
    def __init__(self, api_key: str, model: str = DEFAULT_EMBEDDING_MODEL):
        self._client = openai.AsyncOpenAI(api_key=api_key) if api_key else None
        self._model = model

    @retry(**default_retry_kwargs())
    async def _create(self, texts: list[str]) -> list[list[float]]:
        response = await self._client.embeddings.create(model=self._model, input=texts)
        return [item.embedding for item in response.data]

    async def embed(self, texts: list[str]) -> list[list[float]] | None:
        if self._client is None:
            logger.error("Embedding client not initialized (missing OPENAI_API_KEY)")
            return None
        if not texts:
            return []
        try:
            return await self._create(texts)
        except Exception as ex:
            logger.error(f"Error generating embeddings: {type(ex).__name__}: {ex}")
            return None
