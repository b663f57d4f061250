from __future__ import annotations

import json
import uuid
from dataclasses import dataclass, field
from typing import AsyncIterator

from loguru import logger

from portfolio_chat.context_resolver import ContextResolver
from portfolio_chat.entities import EntityCatalog
from portfolio_chat.exceptions import (
    InvalidRequestError,
    OrchestrationError,
    PortfolioChatError,
    RateLimitExceededError,
)
from portfolio_chat.memory.models import AssistantTurn, Turn, UserTurn
from portfolio_chat.memory.session_store import DEFAULT_MAX_HISTORY, SessionStore
from portfolio_chat.message_builder import build_messages
from portfolio_chat.provider import ModelProvider
from portfolio_chat.rate_limiter import RateLimiter
from portfolio_chat.retrieval.retriever import Retriever, citations, format_context_block
from portfolio_chat.stream_assembler import StreamAssembler
from portfolio_chat.system_prompt import ChatMode, build_clarification, build_system_prompt
from portfolio_chat.tool_call_loop import ToolCallLoop
from portfolio_chat.tools.github.github_client import SourceHostingClient

RATE_LIMIT_WINDOW_MS = 60_000
DEFAULT_REQUESTS_PER_MINUTE = 20


@dataclass
class ChatRequest:
    message: str
    conversation_id: str | None = None
    repo_filter: str | None = None
    mode: ChatMode = "general"
    previous_messages: list[dict] = field(default_factory=list)


@dataclass
class ChatReply:
    conversation_id: str
    body: AsyncIterator[bytes]
    citations: list[dict] = field(default_factory=list)
    function_calls: list[str] = field(default_factory=list)
    active_entity: str | None = None
    is_clarification: bool = False

    def headers(self) -> dict[str, str]:
        return {
            "x-conversation-id": self.conversation_id,
            "x-citations": json.dumps(self.citations),
            "x-function-calls": json.dumps(self.function_calls),
        }


async def _single_token(text: str) -> AsyncIterator[str]:
    yield text


class ChatOrchestrator:
    """Runs one chat request end to end and hands back a streaming reply.

    Order of work: validate, rate limit, record the user turn, resolve the
    active project, retrieve context, build the prompt, let the model use
    tools, then stream the final answer (persisted once the stream ends).
    """

    def __init__(
        self,
        *,
        sessions: SessionStore,
        rate_limiter: RateLimiter,
        resolver: ContextResolver,
        retriever: Retriever,
        catalog: EntityCatalog,
        tool_loop: ToolCallLoop,
        model: ModelProvider,
        owner_name: str,
        owner_profile: str = "",
        github_owner: str = "",
        source_host: SourceHostingClient | None = None,
        requests_per_minute: int = DEFAULT_REQUESTS_PER_MINUTE,
        max_history: int = DEFAULT_MAX_HISTORY,
    ) -> None:
        self._sessions = sessions
        self._rate_limiter = rate_limiter
        self._resolver = resolver
        self._retriever = retriever
        self._catalog = catalog
        self._tool_loop = tool_loop
        self._model = model
        self._assembler = StreamAssembler(sessions)
        self._owner_name = owner_name
        self._owner_profile = owner_profile
        self._github_owner = github_owner
        self._source_host = source_host
        self._requests_per_minute = requests_per_minute
        self._max_history = max_history

    async def handle(self, request: ChatRequest, client_id: str = "unknown") -> ChatReply:
        message = (request.message or "").strip()
        if not message:
            raise InvalidRequestError("Message is required")

        identifier = f"chat-{client_id}"
        if not self._rate_limiter.check(identifier, self._requests_per_minute, RATE_LIMIT_WINDOW_MS).allowed:
            logger.warning(f"Rate limit exceeded for {identifier}")
            raise RateLimitExceededError(identifier, self._requests_per_minute)

        conversation_id = request.conversation_id or str(uuid.uuid4())
        debug: dict = {"conversation_id": conversation_id}
        logger.info(f"Chat request for {conversation_id} (mode={request.mode}, filter={request.repo_filter})")

        try:
            return await self._handle(request, message, conversation_id, debug)
        except PortfolioChatError:
            raise
        except Exception as ex:
            logger.exception(f"Chat request failed for {conversation_id}: {ex}")
            raise OrchestrationError("Failed to process chat request", debug=debug) from ex

    async def _handle(self, request: ChatRequest, message: str, conversation_id: str, debug: dict) -> ChatReply:
        await self._seed_history(conversation_id, request.previous_messages)
        await self._sessions.append_turn(conversation_id, UserTurn(message))

        resolution = await self._resolver.resolve(conversation_id, message)
        if resolution.is_ambiguous:
            logger.info(f"Asking {conversation_id} which project they mean")
            return ChatReply(
                conversation_id=conversation_id,
                body=self._assembler.assemble(conversation_id, _single_token(build_clarification(self._catalog))),
                is_clarification=True,
            )

        entity_filter = request.repo_filter or resolution.active_entity
        documents = await self._retriever.retrieve(message, entity_filter)
        context_block = format_context_block(documents)

        snapshot = None
        if self._source_host is not None and self._github_owner:
            snapshot = await self._source_host.fetch_profile_snapshot(self._github_owner)

        system_prompt = build_system_prompt(
            self._catalog,
            owner_name=self._owner_name,
            owner_profile=self._owner_profile,
            github_owner=self._github_owner,
            mode=request.mode,
            active_entity=resolution.active_entity,
            github_snapshot=snapshot,
        )
        history = await self._sessions.get_history(conversation_id)
        messages = build_messages(system_prompt, context_block, history)
        debug.update(
            system_prompt_length=len(system_prompt),
            context_length=len(context_block or ""),
            message_count=len(messages),
            entity_filter=entity_filter,
        )

        async def record(turn: Turn) -> None:
            await self._sessions.append_turn(conversation_id, turn)

        outcome = await self._tool_loop.run(messages, on_turn=record)
        debug["tool_iterations"] = outcome.iterations

        if outcome.answer is not None:
            tokens = _single_token(outcome.answer)
        else:
            tokens = self._model.stream(outcome.messages)

        return ChatReply(
            conversation_id=conversation_id,
            body=self._assembler.assemble(conversation_id, tokens),
            citations=citations(documents),
            function_calls=outcome.invoked_tools,
            active_entity=resolution.active_entity,
        )

    async def _seed_history(self, conversation_id: str, previous_messages: list[dict]) -> None:
        if not previous_messages or await self._sessions.get_history(conversation_id):
            return
        seeded = 0
        for item in previous_messages[-self._max_history:]:
            role = item.get("role")
            content = str(item.get("content") or "").strip()
            if not content:
                continue
            if role == "user":
                await self._sessions.append_turn(conversation_id, UserTurn(content))
            elif role == "assistant":
                await self._sessions.append_turn(conversation_id, AssistantTurn(content))
            else:
                continue
            seeded += 1
        logger.debug(f"Seeded {conversation_id} with {seeded} client-side messages")
