from __future__ import annotations

import re
from dataclasses import dataclass

from loguru import logger

from portfolio_chat.entities import EntityCatalog
from portfolio_chat.memory.session_store import SessionStore

REFERENTIAL_CUES = (" it ", " this ", " that ", " the project ", " the app ", " the repo ")

_NON_WORD = re.compile(r"[^\w]+")


@dataclass(frozen=True)
class ContextResolution:
    active_entity: str | None
    is_ambiguous: bool = False


def has_referential_cue(message: str) -> bool:
    normalized = " " + _NON_WORD.sub(" ", message.lower()).strip() + " "
    return any(cue in normalized for cue in REFERENTIAL_CUES)


class ContextResolver:
    """Decides which project a conversation is currently about.

    An explicit mention always wins and replaces the stored entity. A pronoun
    with nothing stored to refer to is reported as ambiguous instead of guessed.
    """

    def __init__(self, catalog: EntityCatalog, sessions: SessionStore):
        self._catalog = catalog
        self._sessions = sessions

    async def resolve(self, conversation_id: str, message: str) -> ContextResolution:
        mentioned = self._catalog.find_mention(message)
        if mentioned is not None:
            await self._sessions.set_active_entity(conversation_id, mentioned.key)
            logger.debug(f"Context for {conversation_id}: explicit mention of {mentioned.key}")
            return ContextResolution(mentioned.key, is_ambiguous=False)

        current = await self._sessions.get_active_entity(conversation_id)

        if has_referential_cue(message):
            if current:
                return ContextResolution(current, is_ambiguous=False)
            logger.debug(f"Context for {conversation_id}: referential cue with no active entity")
            return ContextResolution(None, is_ambiguous=True)

        return ContextResolution(current, is_ambiguous=False)
