from __future__ import annotations

from dataclasses import dataclass

from loguru import logger

from portfolio_chat.exceptions import (
    ExplanationError,
    InvalidRequestError,
    NotFoundError,
    PayloadTooLargeError,
    RateLimitExceededError,
)
from portfolio_chat.provider import ModelProvider
from portfolio_chat.rate_limiter import RateLimiter
from portfolio_chat.tools.github.github_client import SourceHostingClient

MAX_FILE_CHARS = 50_000
DEFAULT_REQUESTS_PER_MINUTE = 10
RATE_LIMIT_WINDOW_MS = 60_000

_REVIEWER_PROMPT = (
    "You are a technical code reviewer and educator. Provide clear, insightful "
    "explanations of code with architectural context."
)

_INSTRUCTIONS = """\
Instructions:
1. Start with a high-level overview (what does this code do?)
2. Explain the architecture and structure
3. Highlight key functions and classes and their purposes
4. Point out interesting patterns, good practices, or potential improvements
5. If there is a specific question, answer it in detail
6. Use technical language appropriate for a senior engineer interview

Be concise but thorough. Use markdown formatting."""


@dataclass(frozen=True)
class Explanation:
    explanation: str
    url: str
    owner: str
    repo: str
    path: str
    lines: int
    size: int


def blob_url(owner: str, repo: str, path: str, branch: str = "main") -> str:
    return f"https://github.com/{owner}/{repo}/blob/{branch}/{path}"


def _build_prompt(repo: str, path: str, content: str, question: str | None) -> str:
    ask = f"Specific Question: {question}" if question else "Provide a comprehensive explanation of this code."
    return (
        "You are a senior software engineer explaining code to a technical interviewer.\n\n"
        f"File: {path}\n"
        f"Repository: {repo}\n\n"
        f"Code:\n```\n{content}\n```\n\n"
        f"{ask}\n\n"
        f"{_INSTRUCTIONS}"
    )


class CodeExplainer:
    def __init__(
        self,
        client: SourceHostingClient,
        model: ModelProvider,
        rate_limiter: RateLimiter,
        *,
        requests_per_minute: int = DEFAULT_REQUESTS_PER_MINUTE,
        max_file_chars: int = MAX_FILE_CHARS,
    ):
        self._client = client
        self._model = model
        self._rate_limiter = rate_limiter
        self._requests_per_minute = requests_per_minute
        self._max_file_chars = max_file_chars

    async def explain(
        self,
        owner: str,
        repo: str,
        path: str,
        question: str | None = None,
        *,
        client_id: str = "unknown",
    ) -> Explanation:
        identifier = f"explain-{client_id}"
        if not self._rate_limiter.check(identifier, self._requests_per_minute, RATE_LIMIT_WINDOW_MS).allowed:
            raise RateLimitExceededError(identifier, self._requests_per_minute)

        if not (owner and repo and path):
            raise InvalidRequestError("Missing required fields: repo, path, owner")

        logger.info(f"Explaining code: {owner}/{repo}/{path}")
        debug: dict = {"owner": owner, "repo": repo, "path": path}
        try:
            content = await self._client.fetch_file(owner, repo, path)
        except Exception as ex:
            logger.exception(f"Fetching {owner}/{repo}/{path} failed: {ex}")
            raise ExplanationError("Failed to fetch file", debug={**debug, "stage": "fetch"}) from ex
        if not content:
            raise NotFoundError("File not found or empty")
        if len(content) > self._max_file_chars:
            raise PayloadTooLargeError(
                f"File too large ({len(content)} characters). Maximum {self._max_file_chars} characters."
            )

        try:
            text = await self._model.complete([
                {"role": "system", "content": _REVIEWER_PROMPT},
                {"role": "user", "content": _build_prompt(repo, path, content, question)},
            ])
        except Exception as ex:
            logger.exception(f"Explanation of {owner}/{repo}/{path} failed: {ex}")
            raise ExplanationError(
                "Failed to explain code", debug={**debug, "stage": "model", "size": len(content)}
            ) from ex
        return Explanation(
            explanation=text or "No explanation generated.",
            url=blob_url(owner, repo, path),
            owner=owner,
            repo=repo,
            path=path,
            lines=len(content.split("\n")),
            size=len(content),
        )
