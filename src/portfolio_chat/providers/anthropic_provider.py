from typing import AsyncIterator

import anthropic
from loguru import logger
from tenacity import retry

from portfolio_chat.memory.models import ToolCall
from portfolio_chat.providers.common import ModelDecision, drop_unpaired_tool_messages, parse_arguments
from portfolio_chat.retry_policy import default_retry_kwargs

DEFAULT_MODEL = "claude-sonnet-4-5"


def _text_block(text: str) -> dict:
    return {"type": "text", "text": text}


def _to_anthropic_messages(messages: list[dict], *, flatten_tools: bool = False) -> tuple[str, list[dict]]:
    """Convert internal (OpenAI-style) messages to Anthropic format.

    System messages are lifted into the separate ``system`` parameter. Tool
    calls become ``tool_use`` blocks and tool results ``tool_result`` blocks in
    a user message. With ``flatten_tools`` the exchange is rendered as plain
    text instead, for requests that carry no tool definitions.
    """
    system_parts: list[str] = []
    out: list[dict] = []

    def append(role: str, blocks: list[dict]) -> None:
        if not blocks:
            return
        if out and out[-1]["role"] == role:
            out[-1]["content"].extend(blocks)
        else:
            out.append({"role": role, "content": blocks})

    for msg in drop_unpaired_tool_messages(messages):
        role = msg["role"]
        content = msg.get("content") or ""

        if role == "system":
            system_parts.append(content)

        elif role == "assistant" and msg.get("tool_calls"):
            blocks = [_text_block(content)] if content else []
            for call in msg["tool_calls"]:
                fn = call["function"]
                if flatten_tools:
                    blocks.append(_text_block(f"[Called tool {fn['name']} with {fn.get('arguments') or '{}'}]"))
                else:
                    blocks.append({
                        "type": "tool_use",
                        "id": call["id"],
                        "name": fn["name"],
                        "input": parse_arguments(fn.get("arguments")),
                    })
            append("assistant", blocks)

        elif role == "tool":
            if flatten_tools:
                label = msg.get("name") or "tool"
                append("user", [_text_block(f"[Result of {label}]\n{content}")])
            else:
                append("user", [{
                    "type": "tool_result",
                    "tool_use_id": msg["tool_call_id"],
                    "content": content,
                }])

        elif content:
            append(role, [_text_block(content)])

    return "\n\n".join(system_parts), out


def _to_anthropic_tools(tools: list[dict]) -> list[dict]:
    return [
        {
            "name": t["name"],
            "description": t.get("description", ""),
            "input_schema": t.get("input_schema", {"type": "object", "properties": {}}),
        }
        for t in tools
    ]


class AnthropicProvider:
    def __init__(
        self,
        api_key: str,
        *,
        model: str = DEFAULT_MODEL,
        temperature: float = 0.3,
        max_tokens: int = 2048,
        client: anthropic.AsyncAnthropic | None = None,
    ):
        self._client = client or anthropic.AsyncAnthropic(api_key=api_key)
        self._model = model
        self._temperature = temperature
        self._max_tokens = max_tokens

    @retry(**default_retry_kwargs())
    async def decide(self, messages: list[dict], tools: list[dict]) -> ModelDecision:
        system, anthropic_messages = _to_anthropic_messages(messages)
        kwargs: dict = dict(
            model=self._model,
            max_tokens=self._max_tokens,
            temperature=self._temperature,
            system=system,
            messages=anthropic_messages,
        )
        if tools:
            kwargs["tools"] = _to_anthropic_tools(tools)

        logger.debug(f"API request: model={self._model}, messages={len(anthropic_messages)}, tools={len(tools)}")
        response = await self._client.messages.create(**kwargs)

        usage = response.usage
        logger.debug(
            f"API response: stop_reason={response.stop_reason}, "
            f"input_tokens={usage.input_tokens}, output_tokens={usage.output_tokens}"
        )

        text_parts: list[str] = []
        calls: list[ToolCall] = []
        for block in response.content:
            if block.type == "text":
                text_parts.append(block.text)
            elif block.type == "tool_use":
                calls.append(ToolCall(id=block.id, name=block.name, arguments=dict(block.input or {})))
        return ModelDecision(content="\n".join(text_parts) or None, tool_calls=calls)

    @retry(**default_retry_kwargs())
    async def _open_stream(self, system: str, anthropic_messages: list[dict]):
        return await self._client.messages.create(
            model=self._model,
            max_tokens=self._max_tokens,
            temperature=self._temperature,
            system=system,
            messages=anthropic_messages,
            stream=True,
        )

    async def stream(self, messages: list[dict]) -> AsyncIterator[str]:
        system, anthropic_messages = _to_anthropic_messages(messages, flatten_tools=True)
        logger.debug(f"Streaming request: model={self._model}, messages={len(anthropic_messages)}")
        stream = await self._open_stream(system, anthropic_messages)
        async for event in stream:
            if event.type == "content_block_delta" and event.delta.type == "text_delta":
                yield event.delta.text

    @retry(**default_retry_kwargs())
    async def complete(self, messages: list[dict]) -> str:
        system, anthropic_messages = _to_anthropic_messages(messages, flatten_tools=True)
        response = await self._client.messages.create(
            model=self._model,
            max_tokens=self._max_tokens,
            temperature=self._temperature,
            system=system,
            messages=anthropic_messages,
        )
        return "".join(block.text for block in response.content if block.type == "text")
