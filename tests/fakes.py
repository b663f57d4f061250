from typing import Any, AsyncIterator

from portfolio_chat.providers.common import ModelDecision
from portfolio_chat.retrieval.vector_search import RetrievedDocument
from portfolio_chat.tools.github.github_client import ProfileSnapshot


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeTool:
    def __init__(self, name: str, result: str = "ok", error: Exception | None = None):
        self._name = name
        self._result = result
        self._error = error
        self.calls: list[dict] = []

    @property
    def name(self) -> str:
        return self._name

    @property
    def description(self) -> str:
        return f"Fake {self._name}"

    @property
    def input_schema(self) -> dict[str, Any]:
        return {"type": "object", "properties": {}}

    async def execute(self, tool_input: dict[str, Any]) -> str:
        self.calls.append(tool_input)
        if self._error is not None:
            raise self._error
        return self._result


class FakeModel:
    """Scripted model: ``decisions`` are returned in order, the last one repeats."""

    def __init__(
        self,
        decisions: list[ModelDecision] | None = None,
        tokens: list[str] | None = None,
        completion: str = "",
        stream_error: Exception | None = None,
    ):
        self._decisions = list(decisions or [ModelDecision(content=None)])
        self._tokens = list(tokens or [])
        self._completion = completion
        self._stream_error = stream_error
        self.decide_calls: list[tuple[list[dict], list[dict]]] = []
        self.stream_calls: list[list[dict]] = []
        self.complete_calls: list[list[dict]] = []

    async def decide(self, messages: list[dict], tools: list[dict]) -> ModelDecision:
        self.decide_calls.append((list(messages), list(tools)))
        index = min(len(self.decide_calls) - 1, len(self._decisions) - 1)
        return self._decisions[index]

    async def stream(self, messages: list[dict]) -> AsyncIterator[str]:
        self.stream_calls.append(list(messages))
        for token in self._tokens:
            yield token
        if self._stream_error is not None:
            raise self._stream_error

    async def complete(self, messages: list[dict]) -> str:
        self.complete_calls.append(list(messages))
        return self._completion


class FakeEmbeddings:
    def __init__(self, vectors: list[list[float]] | None = None, *, unavailable: bool = False):
        self._vectors = vectors if vectors is not None else [[0.1, 0.2, 0.3]]
        self._unavailable = unavailable
        self.calls = 0

    async def embed(self, texts: list[str]) -> list[list[float]] | None:
        self.calls += 1
        return None if self._unavailable else self._vectors


class FakeSearch:
    def __init__(self, documents: list[RetrievedDocument] | None = None, error: Exception | None = None):
        self.documents = list(documents or [])
        self.error = error
        self.calls: list[tuple[list[float], int, str | None]] = []

    async def search(self, vector: list[float], top_k: int, entity_filter: str | None = None) -> list[RetrievedDocument]:
        self.calls.append((vector, top_k, entity_filter))
        if self.error is not None:
            raise self.error
        return list(self.documents)


class FakeSourceHost:
    def __init__(
        self,
        files: dict[str, str] | None = None,
        trees: dict[str, list[str]] | None = None,
        snapshot: ProfileSnapshot | None = None,
    ):
        self.files = dict(files or {})
        self.trees = dict(trees or {})
        self.snapshot = snapshot
        self.snapshot_calls: list[str] = []
        self.tree_calls: list[tuple[str, str, str]] = []

    async def fetch_tree(self, owner: str, repo: str, branch: str = "main") -> list[str]:
        self.tree_calls.append((owner, repo, branch))
        return list(self.trees.get(f"{owner}/{repo}@{branch}", []))

    async def fetch_file(self, owner: str, repo: str, path: str) -> str | None:
        return self.files.get(f"{owner}/{repo}/{path}")

    async def fetch_readme(self, owner: str, repo: str) -> str | None:
        return self.files.get(f"{owner}/{repo}/README.md")

    async def fetch_profile_snapshot(self, owner: str) -> ProfileSnapshot | None:
        self.snapshot_calls.append(owner)
        return self.snapshot


async def collect(body) -> bytes:
    chunks = []
    async for chunk in body:
        chunks.append(chunk)
    return b"".join(chunks)
