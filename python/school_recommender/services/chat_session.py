# Chat Session Manager - append-only counselor transcript with single-flight turns

import logging
from typing import List, Optional, Tuple

from prometheus_client import Counter

from ..models import ChatMessage, ChatState, ChatTranscript
from .gemini_gateway import GatewayError, RecommendationGateway
from .prompts import COUNSELOR_WELCOME

logger = logging.getLogger(__name__)

FALLBACK_ERROR_MESSAGE = "Sorry, something went wrong."

try:
    chat_turn_total = Counter("chat_turn_total", "Counselor chat turns by outcome", ["outcome"])
except ValueError:
    # metrics already registered
    from prometheus_client import REGISTRY
    chat_turn_total = REGISTRY._names_to_collectors["chat_turn_total"]


class ChatSessionManager:
    """
    Transcript owner for one counselor conversation.

    The transcript only grows: a turn appends the user message immediately and
    then exactly one model or error message once the gateway answers.
    """

    def __init__(self, gateway: RecommendationGateway, welcome: str = COUNSELOR_WELCOME):
        self.gateway = gateway
        self.welcome = welcome
        self._seq = 0
        self._start()

    def _start(self):
        self._messages: List[ChatMessage] = [ChatMessage(role="model", content=self.welcome)]
        self.state = ChatState.IDLE
        self.draft = ""

    @property
    def transcript(self) -> Tuple[ChatMessage, ...]:
        return tuple(self._messages)

    @property
    def is_loading(self) -> bool:
        return self.state == ChatState.SENDING

    def _append(self, role: str, content: str) -> ChatMessage:
        message = ChatMessage(role=role, content=content)
        self._messages.append(message)
        return message

    async def send_turn(self, text: str) -> Optional[ChatMessage]:
        """
        Send one question. Returns the appended reply (model or error role), or
        None when the turn was ignored (blank text or a turn already in flight).
        """
        question = (text or "").strip()
        if not question:
            return None
        if self.state == ChatState.SENDING:
            logger.debug("Chat turn ignored: previous turn still in flight")
            chat_turn_total.labels(outcome="busy").inc()
            return None

        self._append("user", question)
        self.draft = ""
        self._seq += 1
        seq = self._seq
        self.state = ChatState.SENDING

        try:
            reply = await self.gateway.send_message(question)
        except GatewayError as e:
            return self._settle(seq, "error", e.message)
        except Exception as e:
            logger.exception(f"Chat gateway raised unexpectedly: {e}")
            return self._settle(seq, "error", str(e) or FALLBACK_ERROR_MESSAGE)
        return self._settle(seq, "model", reply)

    def _settle(self, seq: int, role: str, content: str) -> Optional[ChatMessage]:
        if seq != self._seq:
            logger.info(f"Discarding stale chat reply #{seq}")
            chat_turn_total.labels(outcome="stale").inc()
            return None
        message = self._append(role, content)
        self.state = ChatState.IDLE
        chat_turn_total.labels(outcome="success" if role == "model" else "error").inc()
        return message

    def clear(self):
        """Fresh transcript with only the welcome message; an in-flight reply is discarded"""
        self._seq += 1
        self._start()
        self.gateway.reset_history()

    def snapshot(self) -> ChatTranscript:
        return ChatTranscript(
            state=self.state,
            messages=list(self._messages),
            is_loading=self.is_loading,
        )
