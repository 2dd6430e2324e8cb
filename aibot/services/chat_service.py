# aibot/services/chat_service.py

from typing import List, Optional
import logging

from aibot.services.langchain_service import LLMService
from aibot.services.prompts import build_user_message
from aibot.services.state import Message, SessionStore

logger = logging.getLogger(__name__)


class ChatService:
    """Session-aware chat on top of the completion client"""

    def __init__(self, llm_service: LLMService, session_store: SessionStore):
        self.llm_service = llm_service
        self.session_store = session_store

    async def chat(
        self,
        session_id: str,
        text: str,
        mime_type: Optional[str] = None,
        file_path: Optional[str] = None,
    ) -> str:
        """
        Send a user message (optionally referencing a stored file) and return the reply.

        The user turn is recorded before the model is called and stays in the
        history if the call fails; model errors propagate to the caller.
        """
        if file_path:
            logger.info(f"File path provided: {file_path}")

        prior_history = self.session_store.history(session_id)
        user_message = build_user_message(text, file_path, mime_type)
        self.session_store.append(session_id, Message(role="user", content=user_message))

        response = await self.llm_service.complete(prior_history, user_message)

        self.session_store.append(session_id, Message(role="assistant", content=response))
        logger.debug(
            f"Generated response for session: {session_id} "
            f"(history size: {len(self.session_store.history(session_id))})"
        )
        return response

    def add_to_history(self, session_id: str, message: Message) -> None:
        self.session_store.append(session_id, message)

    def get_history(self, session_id: str) -> List[Message]:
        return self.session_store.history(session_id)

    def clear_history(self, session_id: str) -> None:
        self.session_store.clear(session_id)
        logger.info(f"Cleared conversation history for session: {session_id}")
