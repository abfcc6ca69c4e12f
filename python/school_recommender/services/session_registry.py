import logging
import uuid
from dataclasses import dataclass
from typing import Callable, Optional

from cachetools import TTLCache

from ..models import SessionSnapshot
from .chat_session import ChatSessionManager
from .gemini_gateway import RecommendationGateway
from .recommendation_orchestrator import RecommendationOrchestrator

logger = logging.getLogger(__name__)


@dataclass
class AdvisorSession:
    """One student's form plus counselor chat, sharing a single gateway"""
    session_id: str
    gateway: RecommendationGateway
    recommendations: RecommendationOrchestrator
    chat: ChatSessionManager

    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(
            session_id=self.session_id,
            form=self.recommendations.snapshot(),
            chat=self.chat.snapshot(),
        )


class SessionRegistry:
    """
    In-memory session store. Entries expire after `ttl_seconds` of existence
    and the oldest are evicted beyond `maxsize`; nothing is persisted.
    """

    def __init__(
        self,
        gateway_factory: Callable[[], RecommendationGateway],
        maxsize: int = 1024,
        ttl_seconds: int = 3600,
    ):
        self.gateway_factory = gateway_factory
        self._sessions: TTLCache = TTLCache(maxsize=maxsize, ttl=ttl_seconds)

    def __len__(self) -> int:
        return len(self._sessions)

    def create(self) -> AdvisorSession:
        gateway = self.gateway_factory()
        session = AdvisorSession(
            session_id=f"sess_{uuid.uuid4().hex[:12]}",
            gateway=gateway,
            recommendations=RecommendationOrchestrator(gateway),
            chat=ChatSessionManager(gateway),
        )
        self._sessions[session.session_id] = session
        logger.info(f"Created advisor session {session.session_id}")
        return session

    def get(self, session_id: str) -> AdvisorSession:
        """Raises KeyError for unknown or expired sessions"""
        return self._sessions[session_id]

    def drop(self, session_id: str) -> Optional[AdvisorSession]:
        return self._sessions.pop(session_id, None)
