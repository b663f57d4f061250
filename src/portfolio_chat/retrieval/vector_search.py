from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

import httpx
from loguru import logger
from tenacity import retry

from portfolio_chat.retry_policy import default_retry_kwargs

_TIMEOUT_SECONDS = 15.0


@dataclass(frozen=True)
class RetrievedDocument:
    content: str
    repo: str
    path: str
    url: str = ""
    type: str = "code"
    score: float = 0.0

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RetrievedDocument:
        return cls(
            content=str(data.get("content", "")),
            repo=str(data.get("repo", "")),
            path=str(data.get("path", "")),
            url=str(data.get("url") or ""),
            type=str(data.get("type") or "code"),
            score=float(data.get("score") or 0.0),
        )

    def citation(self) -> dict[str, str]:
        return {"repo": self.repo, "path": self.path, "url": self.url}


@runtime_checkable
class SimilaritySearch(Protocol):
    async def search(
        self,
        vector: list[float],
        top_k: int,
        entity_filter: str | None = None,
    ) -> list[RetrievedDocument]: ...


class HttpVectorSearch:
    """Client for a vector search endpoint that ranks indexed code chunks.

    POSTs ``{"vector", "topK", "filter"}`` and accepts either a JSON list of
    documents or ``{"results": [...]}``.
    """

    def __init__(self, url: str, api_key: str | None = None, *, client: httpx.AsyncClient | None = None):
        self._url = url
        headers = {"Accept": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        self._client = client or httpx.AsyncClient(headers=headers, timeout=_TIMEOUT_SECONDS)

    async def aclose(self) -> None:
        await self._client.aclose()

    @retry(**default_retry_kwargs())
    async def search(
        self,
        vector: list[float],
        top_k: int,
        entity_filter: str | None = None,
    ) -> list[RetrievedDocument]:
        payload: dict[str, Any] = {"vector": vector, "topK": top_k}
        if entity_filter:
            payload["filter"] = {"repo": entity_filter}

        resp = await self._client.post(self._url, json=payload)
        resp.raise_for_status()

        data = resp.json()
        rows = data.get("results", []) if isinstance(data, dict) else data
        documents = [RetrievedDocument.from_dict(row) for row in rows if isinstance(row, dict)]
        logger.debug(f"Vector search returned {len(documents)} documents (top_k={top_k}, filter={entity_filter})")
        return documents[:top_k]


class DisabledSearch:
    """Used when no search endpoint is configured: every query finds nothing."""

    async def search(
        self,
        vector: list[float],
        top_k: int,
        entity_filter: str | None = None,
    ) -> list[RetrievedDocument]:
        return []
