import json
import unittest

from portfolio_chat.entities import EntityCatalog
from portfolio_chat.memory import AssistantTurn, ToolCall, ToolCallTurn, ToolResultTurn, UserTurn
from portfolio_chat.message_builder import CONTEXT_HEADING, NO_CONTEXT_FOUND, build_messages
from portfolio_chat.system_prompt import CLARIFICATION_TEXT, GITHUB_UNAVAILABLE, build_clarification, build_system_prompt
from portfolio_chat.tools.github.github_client import ProfileSnapshot, RepoSnapshot


class BuildMessagesTests(unittest.TestCase):
    def test_single_system_message_then_history_in_order(self) -> None:
        history = [UserTurn("hi"), AssistantTurn("hello"), UserTurn("what stack?")]

        messages = build_messages("PROMPT", "BLOCK", history)

        self.assertEqual(["system", "user", "assistant", "user"], [m["role"] for m in messages])
        self.assertEqual(f"PROMPT\n\n{CONTEXT_HEADING}\nBLOCK", messages[0]["content"])
        self.assertEqual(["hi", "hello", "what stack?"], [m["content"] for m in messages[1:]])

    def test_missing_context_uses_literal_placeholder(self) -> None:
        for block in (None, "", "   "):
            with self.subTest(block=block):
                messages = build_messages("PROMPT", block, [])
                self.assertTrue(messages[0]["content"].endswith(f"{CONTEXT_HEADING}\n{NO_CONTEXT_FOUND}"))

    def test_tool_turns_render_in_chat_format(self) -> None:
        call = ToolCall(id="call_1", name="read_file", arguments={"repo": "r", "path": "p"})
        history = [ToolCallTurn((call,)), ToolResultTurn("call_1", "read_file", "contents")]

        messages = build_messages("PROMPT", None, history)

        call_msg = messages[1]
        self.assertEqual("assistant", call_msg["role"])
        self.assertIsNone(call_msg["content"])
        self.assertEqual("call_1", call_msg["tool_calls"][0]["id"])
        self.assertEqual("read_file", call_msg["tool_calls"][0]["function"]["name"])
        self.assertEqual({"repo": "r", "path": "p"}, json.loads(call_msg["tool_calls"][0]["function"]["arguments"]))

        result_msg = messages[2]
        self.assertEqual({"role": "tool", "tool_call_id": "call_1", "name": "read_file", "content": "contents"}, result_msg)

    def test_history_is_not_truncated(self) -> None:
        history = [UserTurn(f"m{i}") for i in range(40)]
        self.assertEqual(41, len(build_messages("PROMPT", None, history)))


class SystemPromptTests(unittest.TestCase):
    def setUp(self) -> None:
        self.catalog = EntityCatalog.from_projects([
            {"title": "ResearcherX", "description": "Research agents.", "technologies": ["Python"]},
        ])

    def test_includes_projects_mode_and_guardrails(self) -> None:
        prompt = build_system_prompt(self.catalog, owner_name="Jane", mode="tech")

        self.assertIn("Jane's AI portfolio assistant", prompt)
        self.assertIn("Project 1: ResearcherX", prompt)
        self.assertIn("=== TECH MODE ===", prompt)
        self.assertIn("=== GUARDRAILS ===", prompt)
        self.assertNotIn("=== CURRENT TOPIC ===", prompt)

    def test_active_entity_adds_current_topic(self) -> None:
        prompt = build_system_prompt(self.catalog, owner_name="Jane", active_entity="ResearcherX")
        self.assertIn("=== CURRENT TOPIC ===\nActive Project: ResearcherX", prompt)

    def test_unknown_mode_falls_back_to_general(self) -> None:
        prompt = build_system_prompt(self.catalog, owner_name="Jane", mode="pirate")
        self.assertIn("=== GENERAL MODE ===", prompt)

    def test_github_snapshot_lists_recent_repos(self) -> None:
        snapshot = ProfileSnapshot(
            login="jane",
            name="Jane Doe",
            public_repos=42,
            url="https://github.com/jane",
            repositories=(
                RepoSnapshot("ResearcherX", "Research agents", "https://github.com/jane/ResearcherX", "Python", 7),
                RepoSnapshot("dotfiles", None, "https://github.com/jane/dotfiles", None),
            ),
        )

        prompt = build_system_prompt(self.catalog, owner_name="Jane", github_owner="jane", github_snapshot=snapshot)

        self.assertIn("=== REAL-TIME GITHUB SNAPSHOT ===\nProfile: jane | Public Repos: 42", prompt)
        self.assertIn("- ResearcherX (Python): Research agents [7 stars]", prompt)
        self.assertIn("- dotfiles (Code): No description [0 stars]", prompt)

    def test_missing_github_snapshot_is_stated(self) -> None:
        prompt = build_system_prompt(self.catalog, owner_name="Jane", github_owner="jane")
        self.assertIn(GITHUB_UNAVAILABLE, prompt)

    def test_no_github_section_without_owner(self) -> None:
        prompt = build_system_prompt(self.catalog, owner_name="Jane")
        self.assertNotIn("GITHUB SNAPSHOT", prompt)
        self.assertNotIn(GITHUB_UNAVAILABLE, prompt)

    def test_clarification_names_known_projects(self) -> None:
        text = build_clarification(self.catalog)
        self.assertIn("ResearcherX", text)
        self.assertEqual(CLARIFICATION_TEXT, build_clarification(EntityCatalog()))


if __name__ == "__main__":
    unittest.main()
