from __future__ import annotations

from typing import AsyncIterator

from loguru import logger

from portfolio_chat.memory.models import AssistantTurn
from portfolio_chat.memory.session_store import SessionStore

STREAM_ERROR_NOTICE = "\n\n[The response was interrupted. Please try again.]"


class StreamAssembler:
    """Forward model tokens to the client and persist the assembled answer."""

    def __init__(self, sessions: SessionStore):
        self._sessions = sessions

    async def assemble(self, conversation_id: str, tokens: AsyncIterator[str]) -> AsyncIterator[bytes]:
        parts: list[str] = []
        try:
            async for token in tokens:
                if not token:
                    continue
                parts.append(token)
                yield token.encode("utf-8")
        except Exception as ex:
            logger.error(f"Model stream failed for {conversation_id} after {len(parts)} tokens: {ex}")
            yield STREAM_ERROR_NOTICE.encode("utf-8")
        finally:
            aclose = getattr(tokens, "aclose", None)
            if aclose is not None:
                await aclose()
            await self._persist(conversation_id, "".join(parts))

    async def _persist(self, conversation_id: str, text: str) -> None:
        if not text:
            logger.debug(f"No assistant text to persist for {conversation_id}")
            return
        try:
            await self._sessions.append_turn(conversation_id, AssistantTurn(text))
        except Exception as ex:
            # Body already sent; nothing left to report to the client.
            logger.error(f"Failed to persist assistant turn for {conversation_id}: {ex}")
