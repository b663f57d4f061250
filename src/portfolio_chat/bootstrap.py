from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from loguru import logger

from portfolio_chat.app_config import AppConfig, RuntimeEnv
from portfolio_chat.context_resolver import ContextResolver
from portfolio_chat.entities import EntityCatalog, load_catalog
from portfolio_chat.explain import CodeExplainer
from portfolio_chat.logging_config import setup_logging
from portfolio_chat.memory import (
    InMemorySessionStore,
    MemoryStore,
    ResilientSessionStore,
    SessionStore,
    SqliteSessionStore,
)
from portfolio_chat.orchestrator import ChatOrchestrator
from portfolio_chat.provider import create_provider
from portfolio_chat.rate_limiter import RateLimiter
from portfolio_chat.retrieval import (
    DisabledSearch,
    HttpVectorSearch,
    OpenAIEmbeddingService,
    RetrievalCache,
    Retriever,
)
from portfolio_chat.sweeper import PeriodicSweeper
from portfolio_chat.tool_call_loop import ToolCallLoop
from portfolio_chat.tool_registry import get_all
from portfolio_chat.tools.github.github_client import GitHubClient


@dataclass
class AppRuntime:
    orchestrator: ChatOrchestrator
    explainer: CodeExplainer
    sweeper: PeriodicSweeper
    sessions: SessionStore
    catalog: EntityCatalog
    tools: list
    memory_store: MemoryStore | None = None
    log_descriptions: list[str] = field(default_factory=list)
    closeables: list = field(default_factory=list)

    async def aclose(self) -> None:
        await self.sweeper.close()
        for resource in self.closeables:
            await resource.aclose()
        if self.memory_store is not None:
            self.memory_store.close()


def _build_sessions(app: AppConfig) -> tuple[SessionStore, MemoryStore | None]:
    if app.session_store == "memory":
        return InMemorySessionStore(max_history=app.max_history), None

    db_path = Path(app.session_db_path)
    if not db_path.is_absolute():
        db_path = Path.cwd() / db_path
    memory_store = MemoryStore(str(db_path))
    primary = SqliteSessionStore(memory_store, max_history=app.max_history)
    return ResilientSessionStore(primary, InMemorySessionStore(max_history=app.max_history)), memory_store


def bootstrap_runtime(app: AppConfig, env: RuntimeEnv, *, configure_logging: bool = True) -> AppRuntime:
    log_descriptions: list[str] = []
    if configure_logging:
        log_descriptions = setup_logging(level=app.log_level, consumers=app.log_consumers)

    if not env.provider_api_key:
        logger.warning(f"{env.provider_env_var} is not set; model calls will fail")

    catalog = load_catalog(app.projects_path)
    sessions, memory_store = _build_sessions(app)
    rate_limiter = RateLimiter()

    retrieval_cache = RetrievalCache(ttl_seconds=app.cache_ttl_seconds)
    repo_cache = RetrievalCache(ttl_seconds=app.cache_ttl_seconds)
    snapshot_cache = RetrievalCache(ttl_seconds=app.cache_ttl_seconds)

    github = GitHubClient(env.github_token, snapshot_cache=snapshot_cache)
    tools = get_all(github_client=github, github_owner=app.github_owner, repo_cache=repo_cache)

    if env.vector_search_url:
        search = HttpVectorSearch(env.vector_search_url, env.vector_search_api_key)
        closeables = [github, search]
    else:
        logger.warning("VECTOR_SEARCH_URL is not set; answers will have no retrieved context")
        search = DisabledSearch()
        closeables = [github]

    retriever = Retriever(
        OpenAIEmbeddingService(env.openai_api_key or ""),
        search,
        retrieval_cache,
        top_k=app.top_k,
    )

    model = create_provider(
        app.provider_name,
        env.provider_api_key,
        model=app.model,
        temperature=app.temperature,
        max_tokens=app.max_tokens,
    )

    orchestrator = ChatOrchestrator(
        sessions=sessions,
        rate_limiter=rate_limiter,
        resolver=ContextResolver(catalog, sessions),
        retriever=retriever,
        catalog=catalog,
        tool_loop=ToolCallLoop(
            model,
            tools,
            max_iterations=app.max_tool_iterations,
            max_tool_result_chars=app.max_tool_result_chars,
        ),
        model=model,
        owner_name=app.owner_name,
        owner_profile=app.owner_profile,
        github_owner=app.github_owner,
        source_host=github,
        requests_per_minute=app.requests_per_minute,
        max_history=app.max_history,
    )
    explainer = CodeExplainer(
        github,
        model,
        rate_limiter,
        requests_per_minute=app.explain_requests_per_minute,
    )
    sweeper = PeriodicSweeper(
        rate_limiter,
        sessions,
        session_ttl_seconds=app.session_ttl_seconds,
        caches=[retrieval_cache, repo_cache, snapshot_cache],
    )

    return AppRuntime(
        orchestrator=orchestrator,
        explainer=explainer,
        sweeper=sweeper,
        sessions=sessions,
        catalog=catalog,
        tools=tools,
        memory_store=memory_store,
        log_descriptions=log_descriptions,
        closeables=closeables,
    )
