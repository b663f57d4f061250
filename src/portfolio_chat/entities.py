from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path

from loguru import logger

PORTFOLIO_ENTITY_KEY = "3D-Portfolio"


@dataclass(frozen=True)
class Entity:
    key: str
    title: str
    keywords: tuple[str, ...] = ()
    description: str = ""
    technologies: tuple[str, ...] = ()
    url: str | None = None

    def mentioned_in(self, lowered_message: str) -> bool:
        return self.title.lower() in lowered_message or self.key.lower() in lowered_message


def repo_from_url(url: str | None) -> str | None:
    if not url:
        return None
    tail = url.rstrip("/").split("/")[-1]
    if tail.endswith(".git"):
        tail = tail[: -len(".git")]
    return tail or None


def entity_from_project(project: dict) -> Entity:
    title = str(project["title"]).strip()
    technologies = tuple(str(t) for t in project.get("technologies") or ())
    repo_url = project.get("githubLink")
    return Entity(
        key=repo_from_url(repo_url) or title,
        title=title,
        keywords=(title.lower(), *(t.lower() for t in technologies)),
        description=str(project.get("description") or ""),
        technologies=technologies,
        url=project.get("link") or repo_url,
    )


_PORTFOLIO_ENTITY = Entity(
    key=PORTFOLIO_ENTITY_KEY,
    title="portfolio",
    keywords=("portfolio", "this website", "this app", "this site"),
    description="The portfolio website this assistant is embedded in.",
)


@dataclass(frozen=True)
class EntityCatalog:
    """Known projects, loaded once at startup and never mutated."""

    entities: tuple[Entity, ...] = field(default_factory=tuple)

    def __iter__(self):
        return iter(self.entities)

    def __len__(self) -> int:
        return len(self.entities)

    def get(self, key: str | None) -> Entity | None:
        if not key:
            return None
        for entity in self.entities:
            if entity.key == key or entity.title == key:
                return entity
        return None

    def find_mention(self, message: str) -> Entity | None:
        lowered = message.lower()
        for entity in self.entities:
            if entity.mentioned_in(lowered):
                return entity
        return None

    def summary(self, key: str | None) -> str:
        entity = self.get(key)
        if entity is None:
            return ""
        lines = [f"Active Project: {entity.title}", f"Description: {entity.description}"]
        if entity.technologies:
            lines.append(f"Tech Stack: {', '.join(entity.technologies)}")
        return "\n".join(lines)

    @classmethod
    def from_projects(cls, projects: list[dict], *, include_portfolio: bool = True) -> EntityCatalog:
        entities = [entity_from_project(p) for p in projects if p.get("title")]
        if include_portfolio and all(e.key != PORTFOLIO_ENTITY_KEY for e in entities):
            entities.append(_PORTFOLIO_ENTITY)
        return cls(tuple(entities))


def load_catalog(path: str | Path) -> EntityCatalog:
    projects_path = Path(path)
    if not projects_path.exists():
        logger.warning(f"Projects file not found at {projects_path}; entity catalog has only the portfolio entry")
        return EntityCatalog.from_projects([])

    with open(projects_path, encoding="utf-8") as f:
        data = json.load(f)
    if isinstance(data, dict):
        data = data.get("projects", [])
    catalog = EntityCatalog.from_projects(list(data))
    logger.info(f"Loaded {len(catalog)} entities from {projects_path}")
    return catalog
