from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum

from loguru import logger

from portfolio_chat.memory.models import ToolCall, ToolCallTurn, ToolResultTurn, Turn
from portfolio_chat.message_builder import turn_to_message
from portfolio_chat.provider import ModelProvider
from portfolio_chat.providers.common import ModelDecision
from portfolio_chat.tool import Tool, tool_catalog

DEFAULT_MAX_ITERATIONS = 5
DEFAULT_MAX_TOOL_RESULT_CHARS = 10_000


class LoopState(Enum):
    DECIDING = "deciding"
    TOOL_REQUESTED = "tool_requested"
    ANSWERED = "answered"


@dataclass
class ToolLoopOutcome:
    messages: list[dict]
    invoked_tools: list[str] = field(default_factory=list)
    iterations: int = 0
    answer: str | None = None


class ToolCallLoop:
    """Let the model call tools until it answers or the round limit is hit.

    Every tool round appends one assistant tool-call message and one tool
    result message per call. When ``max_iterations`` rounds have run, the loop
    stops with ``answer=None`` and the caller asks for a final answer without
    tool access.
    """

    def __init__(
        self,
        model: ModelProvider,
        tools: list[Tool],
        *,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
        max_tool_result_chars: int = DEFAULT_MAX_TOOL_RESULT_CHARS,
    ) -> None:
        self._model = model
        self._tool_map = {t.name: t for t in tools}
        self._catalog = tool_catalog(tools)
        self._max_iterations = max_iterations
        self._max_tool_result_chars = max_tool_result_chars

    @property
    def tool_names(self) -> list[str]:
        return list(self._tool_map)

    async def run(
        self,
        messages: list[dict],
        *,
        on_turn: Callable[[Turn], Awaitable[None]] | None = None,
    ) -> ToolLoopOutcome:
        messages = list(messages)
        outcome = ToolLoopOutcome(messages=messages)
        state = LoopState.DECIDING
        decision: ModelDecision | None = None

        while state is not LoopState.ANSWERED:
            if state is LoopState.DECIDING:
                if outcome.iterations >= self._max_iterations:
                    logger.warning(f"Tool loop stopped after {outcome.iterations} rounds without an answer")
                    state = LoopState.ANSWERED
                    continue
                decision = await self._model.decide(messages, self._catalog)
                if decision.wants_tools:
                    state = LoopState.TOOL_REQUESTED
                else:
                    outcome.answer = decision.content or None
                    state = LoopState.ANSWERED

            elif state is LoopState.TOOL_REQUESTED:
                call_turn = ToolCallTurn(tuple(decision.tool_calls), content=decision.content or None)
                messages.append(turn_to_message(call_turn))
                if on_turn is not None:
                    await on_turn(call_turn)

                # One call at a time, in the order the model listed them.
                for call in decision.tool_calls:
                    outcome.invoked_tools.append(call.name)
                    result_turn = ToolResultTurn(call.id, call.name, await self.execute_tool(call))
                    messages.append(turn_to_message(result_turn))
                    if on_turn is not None:
                        await on_turn(result_turn)

                outcome.iterations += 1
                state = LoopState.DECIDING

        return outcome

    async def execute_tool(self, call: ToolCall) -> str:
        tool = self._tool_map.get(call.name)
        if tool is None:
            logger.warning(f"Model requested unknown tool {call.name!r}")
            return f'Error: unknown tool "{call.name}"'

        logger.info(f"Running tool {call.name} ({call.id})")
        try:
            result = await tool.execute(call.arguments)
        except Exception as ex:
            logger.error(f"Tool {call.name} failed: {ex}")
            return f'Error executing tool "{call.name}": {ex}'
        return self._truncate_tool_result(str(result), call.name)

    def _truncate_tool_result(self, result: str, tool_name: str) -> str:
        if self._max_tool_result_chars <= 0 or len(result) <= self._max_tool_result_chars:
            return result

        original_length = len(result)
        truncated = result[: self._max_tool_result_chars]
        marker = (
            f"\n\n[TRUNCATED: showing {self._max_tool_result_chars:,} "
            f"of {original_length:,} characters from {tool_name}]"
        )
        logger.warning(
            f"{tool_name} output truncated from {original_length:,} "
            f"to {self._max_tool_result_chars:,} chars"
        )
        return truncated + marker
