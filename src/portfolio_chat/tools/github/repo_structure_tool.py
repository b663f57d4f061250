import asyncio
from dataclasses import dataclass
from typing import Any

from loguru import logger

from portfolio_chat.retrieval.cache import RetrievalCache
from portfolio_chat.tools.github.github_client import SourceHostingClient
from portfolio_chat.tools.github.read_file_tool import _split_repo

_MAX_ENTRIES = 300
_README_EXCERPT_CHARS = 1_500

_IGNORED_SEGMENTS = (
    "node_modules/",
    "dist/",
    "build/",
    ".git/",
    ".next/",
    "coverage/",
    "__pycache__/",
    ".venv/",
)

_IGNORED_SUFFIXES = (
    ".png", ".jpg", ".jpeg", ".gif", ".ico", ".svg", ".webp",
    ".mp4", ".mov", ".pdf", ".zip", ".tar", ".gz",
    ".map", ".min.js", ".min.css", ".lock",
)

_IGNORED_FILES = {"package-lock.json", "yarn.lock", "pnpm-lock.yaml", ".DS_Store"}


def is_interesting_path(path: str) -> bool:
    if any(segment in f"{path}/" or path.startswith(segment) for segment in _IGNORED_SEGMENTS):
        return False
    name = path.rsplit("/", 1)[-1]
    if name in _IGNORED_FILES:
        return False
    return not path.lower().endswith(_IGNORED_SUFFIXES)


@dataclass(frozen=True)
class RepoSummary:
    paths: list[str]
    readme: str | None = None


class RepoStructureTool:
    def __init__(
        self,
        client: SourceHostingClient,
        default_owner: str,
        cache: RetrievalCache[RepoSummary] | None = None,
    ):
        self._client = client
        self._default_owner = default_owner
        self._cache = cache or RetrievalCache()

    @property
    def name(self) -> str:
        return "get_repo_structure"

    @property
    def description(self) -> str:
        return (
            "List the file paths in one of the portfolio's GitHub repositories, followed by the start "
            "of its README (build output, dependencies and binary assets are omitted)."
        )

    @property
    def input_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "repo": {
                    "type": "string",
                    "description": "Repository name",
                },
                "owner": {
                    "type": "string",
                    "description": "Repository owner (defaults to the portfolio owner)",
                },
                "branch": {
                    "type": "string",
                    "description": "Branch name (default: main)",
                },
            },
            "required": ["repo"],
        }

    async def execute(self, tool_input: dict[str, Any]) -> str:
        owner, repo = _split_repo(tool_input.get("repo", ""), tool_input.get("owner") or self._default_owner)
        if not repo:
            return "Error: 'repo' is required"
        branch = str(tool_input.get("branch") or "main")

        async def fetch() -> RepoSummary:
            paths, readme = await asyncio.gather(
                self._fetch_paths(owner, repo, branch),
                self._client.fetch_readme(owner, repo),
            )
            return RepoSummary(paths=paths, readme=readme)

        summary = await self._cache.get_or_fetch(f"repo-summary:{owner}/{repo}@{branch}", fetch)
        visible = [p for p in summary.paths if is_interesting_path(p)]
        if not visible:
            return f"No files found in {owner}/{repo} (branch {branch})."

        lines = [f"Repository: {owner}/{repo} (branch {branch}) -- {len(visible)} files", ""]
        lines.extend(visible[:_MAX_ENTRIES])
        if len(visible) > _MAX_ENTRIES:
            lines.append(f"... and {len(visible) - _MAX_ENTRIES} more files")
        if summary.readme:
            readme = summary.readme.strip()
            if len(readme) > _README_EXCERPT_CHARS:
                readme = readme[:_README_EXCERPT_CHARS] + "\n..."
            lines.extend(["", "README:", readme])
        return "\n".join(lines)

    async def _fetch_paths(self, owner: str, repo: str, branch: str) -> list[str]:
        paths = await self._client.fetch_tree(owner, repo, branch)
        if not paths and branch == "main":
            logger.debug(f"{owner}/{repo} has no 'main' tree, trying 'master'")
            paths = await self._client.fetch_tree(owner, repo, "master")
        return paths
