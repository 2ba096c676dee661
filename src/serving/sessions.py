# ==============================================================================
# Scoring Sessions
# ==============================================================================
#
# In-memory registry of scoring sessions kept by each serving replica.
#
# A session groups predictions of one client: it is opened with
# POST /sessions, predictions may reference it, and DELETE /sessions/{id}
# closes it and answers with a SessionMessage summary.
#
# ==============================================================================

from datetime import datetime, timezone
from itertools import count
from typing import Dict, Iterable, List

from src._utils.logging import get_logger
from src.serving.schemas import Prediction, SessionInfo, SessionMessage

logger = get_logger(__name__)


class SessionNotFoundError(KeyError):
    """Raised for unknown or already closed session ids."""

    def __init__(self, session_id: int):
        super().__init__(session_id)
        self.session_id = session_id

    def __str__(self) -> str:
        return f"Session {self.session_id} not found"


class SessionLimitError(RuntimeError):
    """Raised when the registry is full."""


class SessionRegistry:
    def __init__(self, max_sessions: int = 1000):
        self.max_sessions = max_sessions
        self._sessions: Dict[int, SessionInfo] = {}
        self._ids = count(1)

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: int) -> bool:
        return session_id in self._sessions

    def open(self) -> SessionInfo:
        if len(self._sessions) >= self.max_sessions:
            raise SessionLimitError(
                f"Too many open sessions (maximum {self.max_sessions})"
            )
        session = SessionInfo(
            session_id=next(self._ids), created_at=datetime.now(timezone.utc)
        )
        self._sessions[session.session_id] = session
        logger.info(f"🆕 Opened session {session.session_id}")
        return session

    def get(self, session_id: int) -> SessionInfo:
        try:
            return self._sessions[session_id]
        except KeyError:
            raise SessionNotFoundError(session_id) from None

    def record(self, session_id: int, predictions: Iterable[Prediction]) -> SessionInfo:
        session = self.get(session_id)
        predictions: List[Prediction] = list(predictions)
        session.messages_scored += len(predictions)
        session.spam_count += sum(p.is_spam for p in predictions)
        return session

    def close(self, session_id: int) -> SessionMessage:
        session = self._sessions.pop(session_id, None)
        if session is None:
            raise SessionNotFoundError(session_id)
        logger.info(f"🗑️ Closed session {session_id}")
        return SessionMessage(
            session_id=session_id,
            msg=(
                f"Session {session_id} closed after scoring "
                f"{session.messages_scored} messages ({session.spam_count} spam)"
            ),
        )
