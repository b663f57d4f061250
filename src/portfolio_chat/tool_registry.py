from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

from portfolio_chat.tool import Tool
from portfolio_chat.tools.github.read_file_tool import ReadFileTool
from portfolio_chat.tools.github.repo_structure_tool import RepoStructureTool
from portfolio_chat.tools.web.read_website_tool import ReadWebsiteTool


@dataclass(frozen=True)
class ToolGroup:
    enabled: Callable[[dict], bool]
    build: Callable[[dict], list[Tool]]


def _always(_: dict) -> bool:
    return True


def _github_enabled(ctx: dict) -> bool:
    # Public repositories are readable without a token, only at a lower rate limit.
    return ctx.get("github_client") is not None and bool(ctx.get("github_owner"))


def _github_tools(ctx: dict) -> list[Tool]:
    client = ctx["github_client"]
    owner = ctx["github_owner"]
    return [
        ReadFileTool(client, owner),
        RepoStructureTool(client, owner, cache=ctx.get("repo_cache")),
    ]


def _web_tools(ctx: dict) -> list[Tool]:
    return [ReadWebsiteTool()]


_GROUPS = [
    ToolGroup(enabled=_github_enabled, build=_github_tools),
    ToolGroup(enabled=_always, build=_web_tools),
]


def get_all(github_client=None, github_owner: str | None = None, repo_cache=None) -> list[Tool]:
    ctx = {
        "github_client": github_client,
        "github_owner": github_owner,
        "repo_cache": repo_cache,
    }

    tools: list[Tool] = []
    for group in _GROUPS:
        if group.enabled(ctx):
            tools.extend(group.build(ctx))
    return tools
