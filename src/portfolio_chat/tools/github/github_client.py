from __future__ import annotations

import base64
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

import httpx
from loguru import logger
from tenacity import retry

from portfolio_chat.retrieval.cache import RetrievalCache
from portfolio_chat.retry_policy import RETRYABLE_STATUS_CODES, default_retry_kwargs

GITHUB_API_URL = "https://api.github.com"
SNAPSHOT_REPO_COUNT = 10


@dataclass(frozen=True)
class RepoSnapshot:
    name: str
    description: str | None
    url: str
    language: str | None
    stars: int = 0


@dataclass(frozen=True)
class ProfileSnapshot:
    """Public profile plus the most recently updated repositories."""

    login: str
    name: str | None
    public_repos: int
    url: str
    repositories: tuple[RepoSnapshot, ...] = ()


@runtime_checkable
class SourceHostingClient(Protocol):
    async def fetch_tree(self, owner: str, repo: str, branch: str = "main") -> list[str]: ...

    async def fetch_file(self, owner: str, repo: str, path: str) -> str | None: ...

    async def fetch_readme(self, owner: str, repo: str) -> str | None: ...

    async def fetch_profile_snapshot(self, owner: str) -> ProfileSnapshot | None: ...


class GitHubClient:
    """Read-only access to repository trees and file contents through the GitHub REST API."""

    def __init__(
        self,
        token: str | None = None,
        *,
        client: httpx.AsyncClient | None = None,
        snapshot_cache: RetrievalCache[ProfileSnapshot | None] | None = None,
    ):
        self._token = token
        self._client = client
        self._snapshot_cache = snapshot_cache or RetrievalCache()

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is not None:
            return self._client
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        self._client = httpx.AsyncClient(base_url=GITHUB_API_URL, headers=headers, timeout=30.0)
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    @retry(**default_retry_kwargs())
    async def _get(self, url: str, params: dict[str, Any] | None = None) -> httpx.Response:
        resp = await self._get_client().get(url, params=params or {})
        if resp.status_code in RETRYABLE_STATUS_CODES:
            resp.raise_for_status()
        return resp

    async def fetch_tree(self, owner: str, repo: str, branch: str = "main") -> list[str]:
        resp = await self._get(f"/repos/{owner}/{repo}/git/trees/{branch}", {"recursive": "1"})
        if resp.status_code == 404:
            logger.info(f"No tree for {owner}/{repo}@{branch}")
            return []
        resp.raise_for_status()
        data = resp.json()
        if data.get("truncated"):
            logger.warning(f"GitHub truncated the tree listing for {owner}/{repo}@{branch}")
        return [item["path"] for item in data.get("tree", []) if item.get("type") == "blob"]

    async def fetch_file(self, owner: str, repo: str, path: str) -> str | None:
        resp = await self._get(f"/repos/{owner}/{repo}/contents/{path.strip('/')}")
        if resp.status_code == 404:
            return None
        resp.raise_for_status()
        data = resp.json()
        if isinstance(data, list) or data.get("type") != "file":
            return None
        return _decode_content(data)

    async def fetch_readme(self, owner: str, repo: str) -> str | None:
        resp = await self._get(f"/repos/{owner}/{repo}/readme")
        if resp.status_code == 404:
            return None
        resp.raise_for_status()
        return _decode_content(resp.json())

    async def fetch_profile_snapshot(self, owner: str) -> ProfileSnapshot | None:
        """Cached profile snapshot for the system prompt; ``None`` when GitHub cannot be reached."""
        try:
            return await self._snapshot_cache.get_or_fetch(
                f"github-profile:{owner}", lambda: self._fetch_profile_snapshot(owner)
            )
        except Exception as ex:
            logger.warning(f"GitHub snapshot for {owner} unavailable: {type(ex).__name__}: {ex}")
            return None

    async def _fetch_profile_snapshot(self, owner: str) -> ProfileSnapshot | None:
        resp = await self._get(f"/users/{owner}")
        if resp.status_code == 404:
            logger.info(f"No GitHub user {owner}")
            return None
        resp.raise_for_status()
        profile = resp.json()

        resp = await self._get(
            f"/users/{owner}/repos",
            {"sort": "updated", "per_page": str(SNAPSHOT_REPO_COUNT), "type": "owner"},
        )
        resp.raise_for_status()
        repositories = tuple(
            RepoSnapshot(
                name=item.get("name", ""),
                description=item.get("description"),
                url=item.get("html_url", ""),
                language=item.get("language"),
                stars=item.get("stargazers_count") or 0,
            )
            for item in resp.json()[:SNAPSHOT_REPO_COUNT]
        )
        return ProfileSnapshot(
            login=profile.get("login", owner),
            name=profile.get("name"),
            public_repos=profile.get("public_repos") or 0,
            url=profile.get("html_url", ""),
            repositories=repositories,
        )


def _decode_content(data: dict) -> str | None:
    content_b64 = data.get("content")
    if not content_b64:
        return None
    return base64.b64decode(content_b64).decode("utf-8", errors="replace")
