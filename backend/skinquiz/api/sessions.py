import uuid
import logging
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Any

from pydantic import BaseModel, Field

from ..core.models import Answer, ClassificationResult, Demographics, RouterResult
from ..config import settings

logger = logging.getLogger(__name__)


class ConsultationSession(BaseModel):
    """Server-held answer history for one consultation"""
    session_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    demographics: Optional[Demographics] = None
    answers: List[Answer] = Field(default_factory=list)
    confidence_history: List[float] = Field(default_factory=list)
    current_question_id: Optional[str] = None
    last_routing: Optional[RouterResult] = None
    is_complete: bool = False
    result: Optional[ClassificationResult] = None
    created_at: datetime = Field(default_factory=datetime.now)
    last_activity: datetime = Field(default_factory=datetime.now)
    completed_at: Optional[datetime] = None

    def touch(self):
        self.last_activity = datetime.now()

    def record(self, answers: List[Answer], routing: RouterResult):
        self.answers = answers
        self.confidence_history.append(routing.confidence.confidence)
        self.apply_routing(routing)

    def apply_routing(self, routing: RouterResult):
        self.last_routing = routing
        self.current_question_id = routing.question.id if routing.question else None
        self.touch()

    def complete(self, result: ClassificationResult):
        self.result = result
        self.is_complete = True
        self.current_question_id = None
        self.completed_at = datetime.now()
        self.touch()

    def is_expired(self, max_age_hours: int, now: Optional[datetime] = None) -> bool:
        now = now or datetime.now()
        return now - self.last_activity > timedelta(hours=max_age_hours)

    def get_status(self) -> Dict[str, Any]:
        routing = self.last_routing
        return {
            "session_id": self.session_id,
            "is_complete": self.is_complete,
            "questions_answered": len(self.answers),
            "answers": [a.model_dump() for a in self.answers],
            "confidence": routing.confidence.confidence if routing else 0.0,
            "confidence_tier": routing.confidence.tier.value if routing else None,
            "top_archetypes": routing.confidence.top_archetypes if routing else [],
            "confidence_history": self.confidence_history,
            "phase": routing.phase.value if routing else None,
            "estimated_remaining": 0 if self.is_complete or not routing else routing.estimated_remaining,
            "current_question": routing.question.model_dump() if routing and routing.question else None,
            "result": self.result.model_dump() if self.result else None,
            "created_at": self.created_at.isoformat(),
            "last_activity": self.last_activity.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }


class SessionStore:
    """In-process session registry; consultations resume by session id"""

    def __init__(self, ttl_hours: int = 48):
        self.ttl_hours = ttl_hours
        self.sessions: Dict[str, ConsultationSession] = {}

    def __len__(self):
        return len(self.sessions)

    def create(self, demographics: Optional[Demographics] = None) -> ConsultationSession:
        session = ConsultationSession(demographics=demographics)
        self.sessions[session.session_id] = session
        logger.info(f"Created session {session.session_id}")
        return session

    def get(self, session_id: str) -> Optional[ConsultationSession]:
        session = self.sessions.get(session_id)
        if session and session.is_expired(self.ttl_hours):
            logger.info(f"Session {session_id} expired")
            del self.sessions[session_id]
            return None
        return session

    def delete(self, session_id: str) -> bool:
        removed = self.sessions.pop(session_id, None) is not None
        if removed:
            logger.info(f"Deleted session {session_id}")
        return removed

    def cleanup_expired(self, max_age_hours: Optional[int] = None) -> int:
        max_age_hours = self.ttl_hours if max_age_hours is None else max_age_hours
        now = datetime.now()
        expired = [
            session_id for session_id, session in self.sessions.items()
            if session.is_expired(max_age_hours, now)
        ]
        for session_id in expired:
            del self.sessions[session_id]

        if expired:
            logger.info(f"Cleaned up {len(expired)} expired sessions")
        return len(expired)

    def completed_count(self) -> int:
        return sum(1 for s in self.sessions.values() if s.is_complete)


_store: Optional[SessionStore] = None


def get_session_store() -> SessionStore:
    global _store
    if _store is None:
        _store = SessionStore(ttl_hours=settings.SESSION_TTL_HOURS)
    return _store
