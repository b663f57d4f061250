from typing import AsyncIterator

import openai
from loguru import logger
from tenacity import retry

from portfolio_chat.memory.models import ToolCall
from portfolio_chat.providers.common import ModelDecision, drop_unpaired_tool_messages, parse_arguments
from portfolio_chat.retry_policy import default_retry_kwargs

DEFAULT_MODEL = "gpt-4o-mini"


def _to_openai_messages(messages: list[dict]) -> list[dict]:
    """Internal messages already follow the chat format; only drop fields the API rejects."""
    out: list[dict] = []
    for msg in drop_unpaired_tool_messages(messages):
        if msg["role"] == "tool":
            out.append({"role": "tool", "tool_call_id": msg["tool_call_id"], "content": msg.get("content") or ""})
        else:
            out.append(dict(msg))
    return out


def _to_openai_tools(tools: list[dict]) -> list[dict]:
    """Convert provider-neutral tool dicts to OpenAI function-calling format."""
    return [
        {
            "type": "function",
            "function": {
                "name": t["name"],
                "description": t.get("description", ""),
                "parameters": t.get("input_schema", {}),
            },
        }
        for t in tools
    ]


class OpenAIProvider:
    def __init__(
        self,
        api_key: str,
        *,
        model: str = DEFAULT_MODEL,
        temperature: float = 0.3,
        max_tokens: int = 2048,
        client: openai.AsyncOpenAI | None = None,
    ):
        self._client = client or openai.AsyncOpenAI(api_key=api_key)
        self._model = model
        self._temperature = temperature
        self._max_tokens = max_tokens

    @retry(**default_retry_kwargs())
    async def decide(self, messages: list[dict], tools: list[dict]) -> ModelDecision:
        oai_messages = _to_openai_messages(messages)
        kwargs: dict = dict(
            model=self._model,
            max_tokens=self._max_tokens,
            temperature=self._temperature,
            messages=oai_messages,
        )
        if tools:
            kwargs["tools"] = _to_openai_tools(tools)
            kwargs["tool_choice"] = "auto"

        logger.debug(f"API request: model={self._model}, messages={len(oai_messages)}, tools={len(tools)}")
        response = await self._client.chat.completions.create(**kwargs)
        choice = response.choices[0]
        message = choice.message

        calls = [
            ToolCall(id=tc.id, name=tc.function.name, arguments=parse_arguments(tc.function.arguments))
            for tc in (message.tool_calls or [])
        ]
        logger.debug(f"API response: finish_reason={choice.finish_reason}, tool_calls={len(calls)}")
        return ModelDecision(content=message.content, tool_calls=calls)

    @retry(**default_retry_kwargs())
    async def _open_stream(self, oai_messages: list[dict]):
        return await self._client.chat.completions.create(
            model=self._model,
            max_tokens=self._max_tokens,
            temperature=self._temperature,
            messages=oai_messages,
            stream=True,
        )

    async def stream(self, messages: list[dict]) -> AsyncIterator[str]:
        oai_messages = _to_openai_messages(messages)
        logger.debug(f"Streaming request: model={self._model}, messages={len(oai_messages)}")
        stream = await self._open_stream(oai_messages)
        async for chunk in stream:
            if not chunk.choices:
                continue
            delta = chunk.choices[0].delta
            if delta is not None and delta.content:
                yield delta.content

    @retry(**default_retry_kwargs())
    async def complete(self, messages: list[dict]) -> str:
        response = await self._client.chat.completions.create(
            model=self._model,
            max_tokens=self._max_tokens,
            temperature=self._temperature,
            messages=_to_openai_messages(messages),
        )
        return response.choices[0].message.content or ""
