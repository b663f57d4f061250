from typing import Any

from loguru import logger

from portfolio_chat.tools.github.github_client import SourceHostingClient


class ReadFileTool:
    def __init__(self, client: SourceHostingClient, default_owner: str):
        self._client = client
        self._default_owner = default_owner

    @property
    def name(self) -> str:
        return "read_file"

    @property
    def description(self) -> str:
        return (
            "Read the contents of a file from one of the portfolio's GitHub repositories. "
            "Use get_repo_structure first if you do not know the exact path."
        )

    @property
    def input_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "repo": {
                    "type": "string",
                    "description": "Repository name, e.g. 'Doctor.ai'",
                },
                "path": {
                    "type": "string",
                    "description": "Path to the file within the repository, e.g. 'src/app/page.tsx'",
                },
                "owner": {
                    "type": "string",
                    "description": "Repository owner (defaults to the portfolio owner)",
                },
            },
            "required": ["repo", "path"],
        }

    async def execute(self, tool_input: dict[str, Any]) -> str:
        owner, repo = _split_repo(tool_input.get("repo", ""), tool_input.get("owner") or self._default_owner)
        path = str(tool_input.get("path", "")).strip("/")
        if not repo or not path:
            return "Error: both 'repo' and 'path' are required"

        logger.info(f"read_file {owner}/{repo}/{path}")
        content = await self._client.fetch_file(owner, repo, path)
        if content is None:
            return f"File not found: {owner}/{repo}/{path}"
        return f"File: {owner}/{repo}/{path}\n\n{content}"


def _split_repo(repo: str, owner: str) -> tuple[str, str]:
    repo = str(repo).strip().strip("/")
    if "/" in repo:
        owner, repo = repo.split("/", 1)
    return owner, repo
