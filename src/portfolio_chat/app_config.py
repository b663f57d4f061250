from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path


@dataclass
class RuntimeEnv:
    provider_api_key: str
    provider_env_var: str
    openai_api_key: str | None
    github_token: str | None
    vector_search_url: str | None
    vector_search_api_key: str | None


@dataclass
class AppConfig:
    provider_name: str
    model: str
    max_tokens: int
    temperature: float
    requests_per_minute: int
    explain_requests_per_minute: int
    top_k: int
    cache_ttl_seconds: float
    max_tool_iterations: int
    max_tool_result_chars: int
    max_history: int
    session_ttl_seconds: float
    session_store: str
    session_db_path: str
    projects_path: str
    owner_name: str
    owner_profile: str
    github_owner: str
    cors_origins: list[str]
    host: str
    port: int
    log_level: str
    log_consumers: list | None


def load_json_config() -> dict:
    config_path = Path.cwd() / "config.json"
    if config_path.exists():
        with open(config_path) as f:
            return json.load(f)
    return {}


def _to_bool(value: object, default: bool = False) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"1", "true", "yes", "on"}:
            return True
        if lowered in {"0", "false", "no", "off"}:
            return False
    return bool(value)


def _to_list(value: object) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [part.strip() for part in value.split(",") if part.strip()]
    return [str(part) for part in value]


def parse_app_config(config: dict) -> AppConfig:
    session_store = str(config.get("SessionStore", "sqlite")).strip().lower()
    if not _to_bool(config.get("PersistSessions", True), default=True):
        session_store = "memory"

    return AppConfig(
        provider_name=str(config.get("Provider", "openai")).strip().lower(),
        model=str(config.get("Model", "")).strip(),
        max_tokens=int(config.get("MaxTokens", 2048)),
        temperature=float(config.get("Temperature", 0.3)),
        requests_per_minute=int(config.get("RequestsPerMinute", 20)),
        explain_requests_per_minute=int(config.get("ExplainRequestsPerMinute", 10)),
        top_k=int(config.get("TopK", 8)),
        cache_ttl_seconds=float(config.get("CacheTtlSeconds", 600)),
        max_tool_iterations=int(config.get("MaxToolIterations", 5)),
        max_tool_result_chars=int(config.get("MaxToolResultChars", 10_000)),
        max_history=int(config.get("MaxHistory", 12)),
        session_ttl_seconds=float(config.get("SessionTtlSeconds", 30 * 60)),
        session_store=session_store,
        session_db_path=str(config.get("SessionDbPath", ".portfolio_chat/sessions.db")),
        projects_path=str(config.get("ProjectsPath", "projects.json")),
        owner_name=str(config.get("OwnerName", "the portfolio owner")),
        owner_profile=str(config.get("OwnerProfile", "")),
        github_owner=str(config.get("GitHubOwner", "")).strip(),
        cors_origins=_to_list(config.get("CorsOrigins", ["*"])),
        host=str(config.get("Host", "127.0.0.1")),
        port=int(config.get("Port", 8000)),
        log_level=config.get("LogLevel", "INFO"),
        log_consumers=config.get("LogConsumers"),
    )


def resolve_runtime_env(provider_name: str) -> RuntimeEnv:
    if provider_name == "anthropic":
        provider_api_key = os.environ.get("ANTHROPIC_API_KEY", "")
        provider_env_var = "ANTHROPIC_API_KEY"
    else:
        provider_api_key = os.environ.get("OPENAI_API_KEY", "")
        provider_env_var = "OPENAI_API_KEY"

    return RuntimeEnv(
        provider_api_key=provider_api_key,
        provider_env_var=provider_env_var,
        openai_api_key=os.environ.get("OPENAI_API_KEY") or None,
        github_token=os.environ.get("GITHUB_TOKEN") or None,
        vector_search_url=os.environ.get("VECTOR_SEARCH_URL") or None,
        vector_search_api_key=os.environ.get("VECTOR_SEARCH_API_KEY") or None,
    )
