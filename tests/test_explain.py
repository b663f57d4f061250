import asyncio
import json
import unittest

import httpx

from portfolio_chat.exceptions import (
    ExplanationError,
    InvalidRequestError,
    NotFoundError,
    PayloadTooLargeError,
    RateLimitExceededError,
)
from portfolio_chat.explain import CodeExplainer, blob_url
from portfolio_chat.rate_limiter import RateLimiter
from tests.fakes import FakeClock, FakeModel, FakeSourceHost


class CodeExplainerTests(unittest.TestCase):
    def setUp(self) -> None:
        self.host = FakeSourceHost(files={
            "jane/ResearcherX/src/agent.py": "class Agent:\n    pass\n",
            "jane/ResearcherX/empty.py": "",
            "jane/ResearcherX/big.py": "x" * 51,
        })
        self.model = FakeModel(completion="An agent class.")
        self.explainer = CodeExplainer(
            self.host, self.model, RateLimiter(clock=FakeClock()), requests_per_minute=2, max_file_chars=50
        )

    def _explain(self, *args, **kwargs):
        return asyncio.run(self.explainer.explain(*args, **kwargs))

    def test_explains_file(self) -> None:
        result = self._explain("jane", "ResearcherX", "src/agent.py", "What does it do?")

        self.assertEqual("An agent class.", result.explanation)
        self.assertEqual("https://github.com/jane/ResearcherX/blob/main/src/agent.py", result.url)
        self.assertEqual(3, result.lines)
        self.assertEqual(22, result.size)

        system, user = self.model.complete_calls[0]
        self.assertEqual("system", system["role"])
        self.assertIn("Specific Question: What does it do?", user["content"])
        self.assertIn("class Agent:", user["content"])

    def test_without_question_asks_for_full_explanation(self) -> None:
        self._explain("jane", "ResearcherX", "src/agent.py")
        self.assertIn("comprehensive explanation", self.model.complete_calls[0][1]["content"])

    def test_empty_model_output_has_fallback(self) -> None:
        self.model = FakeModel(completion="")
        explainer = CodeExplainer(self.host, self.model, RateLimiter(clock=FakeClock()))
        result = asyncio.run(explainer.explain("jane", "ResearcherX", "src/agent.py"))
        self.assertEqual("No explanation generated.", result.explanation)

    def test_missing_fields(self) -> None:
        with self.assertRaises(InvalidRequestError):
            self._explain("jane", "", "src/agent.py")

    def test_missing_or_empty_file(self) -> None:
        for path in ("nope.py", "empty.py"):
            with self.subTest(path=path):
                self.explainer = CodeExplainer(self.host, self.model, RateLimiter(clock=FakeClock()))
                with self.assertRaises(NotFoundError):
                    self._explain("jane", "ResearcherX", path)

    def test_file_too_large(self) -> None:
        with self.assertRaises(PayloadTooLargeError) as ctx:
            self._explain("jane", "ResearcherX", "big.py")
        self.assertIn("51", str(ctx.exception))
        self.assertEqual([], self.model.complete_calls)

    def test_rate_limited_per_client(self) -> None:
        self._explain("jane", "ResearcherX", "src/agent.py", client_id="a")
        self._explain("jane", "ResearcherX", "src/agent.py", client_id="a")

        with self.assertRaises(RateLimitExceededError) as ctx:
            self._explain("jane", "ResearcherX", "src/agent.py", client_id="a")
        self.assertEqual("explain-a", ctx.exception.identifier)

        self._explain("jane", "ResearcherX", "src/agent.py", client_id="b")

    def test_fetch_failure_becomes_explanation_error(self) -> None:
        class _UnreachableHost(FakeSourceHost):
            async def fetch_file(self, owner, repo, path):
                raise httpx.ConnectError("connection refused")

        explainer = CodeExplainer(_UnreachableHost(), self.model, RateLimiter(clock=FakeClock()))

        with self.assertRaises(ExplanationError) as ctx:
            asyncio.run(explainer.explain("jane", "ResearcherX", "src/agent.py"))

        self.assertEqual(500, ctx.exception.status_code)
        self.assertEqual("fetch", ctx.exception.debug["stage"])
        self.assertIsInstance(ctx.exception.__cause__, httpx.ConnectError)
        self.assertEqual([], self.model.complete_calls)

    def test_model_failure_becomes_explanation_error(self) -> None:
        class _BrokenModel(FakeModel):
            async def complete(self, messages):
                raise RuntimeError("sk-secret overloaded")

        explainer = CodeExplainer(self.host, _BrokenModel(), RateLimiter(clock=FakeClock()))

        with self.assertRaises(ExplanationError) as ctx:
            asyncio.run(explainer.explain("jane", "ResearcherX", "src/agent.py"))

        debug = ctx.exception.debug
        self.assertEqual({"owner": "jane", "repo": "ResearcherX", "path": "src/agent.py", "stage": "model", "size": 22}, debug)
        self.assertNotIn("sk-secret", json.dumps(debug))

    def test_blob_url(self) -> None:
        self.assertEqual("https://github.com/o/r/blob/dev/a/b.py", blob_url("o", "r", "a/b.py", branch="dev"))


if __name__ == "__main__":
    unittest.main()
