import asyncio
import unittest
from types import SimpleNamespace
from unittest.mock import AsyncMock

from portfolio_chat.providers.anthropic_provider import AnthropicProvider, _to_anthropic_messages, _to_anthropic_tools

_CALL_MSG = {
    "role": "assistant",
    "content": "Checking.",
    "tool_calls": [
        {"id": "toolu_1", "type": "function", "function": {"name": "read_file", "arguments": '{"repo": "r"}'}},
    ],
}
_RESULT_MSG = {"role": "tool", "tool_call_id": "toolu_1", "name": "read_file", "content": "body"}


def _fake_client(create: AsyncMock) -> SimpleNamespace:
    return SimpleNamespace(messages=SimpleNamespace(create=create))


def _response(*blocks) -> SimpleNamespace:
    return SimpleNamespace(
        content=list(blocks),
        stop_reason="end_turn",
        usage=SimpleNamespace(input_tokens=10, output_tokens=5),
    )


async def _events(*texts):
    yield SimpleNamespace(type="message_start")
    for text in texts:
        yield SimpleNamespace(type="content_block_delta", delta=SimpleNamespace(type="text_delta", text=text))
    yield SimpleNamespace(type="message_stop")


class ToAnthropicMessagesTests(unittest.TestCase):
    def test_system_is_lifted_out(self) -> None:
        system, messages = _to_anthropic_messages([
            {"role": "system", "content": "S"},
            {"role": "user", "content": "hi"},
        ])
        self.assertEqual("S", system)
        self.assertEqual([{"role": "user", "content": [{"type": "text", "text": "hi"}]}], messages)

    def test_tool_exchange_uses_tool_blocks(self) -> None:
        _, messages = _to_anthropic_messages([{"role": "user", "content": "q"}, _CALL_MSG, _RESULT_MSG])

        self.assertEqual(["user", "assistant", "user"], [m["role"] for m in messages])
        tool_use = messages[1]["content"][1]
        self.assertEqual({"type": "tool_use", "id": "toolu_1", "name": "read_file", "input": {"repo": "r"}}, tool_use)
        self.assertEqual(
            [{"type": "tool_result", "tool_use_id": "toolu_1", "content": "body"}],
            messages[2]["content"],
        )

    def test_flattened_tool_exchange_is_text_only(self) -> None:
        _, messages = _to_anthropic_messages(
            [{"role": "user", "content": "q"}, _CALL_MSG, _RESULT_MSG], flatten_tools=True
        )

        block_types = {b["type"] for m in messages for b in m["content"]}
        self.assertEqual({"text"}, block_types)
        self.assertIn("[Result of read_file]\nbody", messages[-1]["content"][-1]["text"])

    def test_consecutive_same_role_messages_are_merged(self) -> None:
        _, messages = _to_anthropic_messages([
            {"role": "user", "content": "a"},
            {"role": "user", "content": "b"},
        ])
        self.assertEqual(1, len(messages))
        self.assertEqual(2, len(messages[0]["content"]))

    def test_tools(self) -> None:
        self.assertEqual(
            [{"name": "read_file", "description": "", "input_schema": {"type": "object", "properties": {}}}],
            _to_anthropic_tools([{"name": "read_file"}]),
        )


class AnthropicProviderTests(unittest.TestCase):
    def test_decide_collects_text_and_tool_use(self) -> None:
        create = AsyncMock(return_value=_response(
            SimpleNamespace(type="text", text="Let me look."),
            SimpleNamespace(type="tool_use", id="toolu_2", name="get_repo_structure", input={"repo": "r"}),
        ))
        provider = AnthropicProvider("key", client=_fake_client(create))

        decision = asyncio.run(provider.decide(
            [{"role": "system", "content": "S"}, {"role": "user", "content": "hi"}],
            [{"name": "get_repo_structure"}],
        ))

        self.assertEqual("Let me look.", decision.content)
        self.assertEqual("get_repo_structure", decision.tool_calls[0].name)
        self.assertEqual({"repo": "r"}, decision.tool_calls[0].arguments)
        self.assertEqual("S", create.call_args.kwargs["system"])
        self.assertIn("tools", create.call_args.kwargs)

    def test_decide_text_only(self) -> None:
        create = AsyncMock(return_value=_response(SimpleNamespace(type="text", text="Hello")))
        provider = AnthropicProvider("key", client=_fake_client(create))

        decision = asyncio.run(provider.decide([{"role": "user", "content": "hi"}], []))

        self.assertEqual("Hello", decision.content)
        self.assertFalse(decision.wants_tools)
        self.assertNotIn("tools", create.call_args.kwargs)

    def test_stream_yields_text_deltas(self) -> None:
        create = AsyncMock(return_value=_events("Hel", "lo"))
        provider = AnthropicProvider("key", client=_fake_client(create))

        async def go():
            return [t async for t in provider.stream([{"role": "user", "content": "q"}, _CALL_MSG, _RESULT_MSG])]

        self.assertEqual(["Hel", "lo"], asyncio.run(go()))
        self.assertNotIn("tools", create.call_args.kwargs)

    def test_complete_joins_text_blocks(self) -> None:
        create = AsyncMock(return_value=_response(
            SimpleNamespace(type="text", text="Part one. "),
            SimpleNamespace(type="text", text="Part two."),
        ))
        provider = AnthropicProvider("key", client=_fake_client(create))

        self.assertEqual("Part one. Part two.", asyncio.run(provider.complete([{"role": "user", "content": "x"}])))


if __name__ == "__main__":
    unittest.main()
