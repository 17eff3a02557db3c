from fastapi import APIRouter, HTTPException, Query, Depends
from typing import Optional
import logging
from datetime import datetime

import psutil

from ..core.engine import ArchetypeEngine, get_engine
from ..core.exceptions import InvalidAnswerError
from ..core.models import (
    Answer, ConsultationRequest, Phase, StartSessionRequest, SubmitAnswerRequest
)
from .sessions import SessionStore, get_session_store
from ..config import settings

logger = logging.getLogger(__name__)

router = APIRouter()


def _get_session_or_404(store: SessionStore, session_id: str):
    session = store.get(session_id)
    if not session:
        raise HTTPException(status_code=404, detail="Session not found")
    return session


# CONSULTATION ENDPOINTS (stateless)

@router.post("/consultation/advance")
async def advance_consultation(request: ConsultationRequest,
                               engine: ArchetypeEngine = Depends(get_engine)):
    """Next question (or done) for a full answer history"""
    return engine.advance(request.answers, request.demographics)


@router.post("/consultation/classify")
async def classify_consultation(request: ConsultationRequest,
                                engine: ArchetypeEngine = Depends(get_engine)):
    """Final classification for a full answer history"""
    return engine.classify(request.answers, request.demographics)


# SESSION ENDPOINTS

@router.post("/sessions")
async def start_session(request: Optional[StartSessionRequest] = None,
                        engine: ArchetypeEngine = Depends(get_engine),
                        store: SessionStore = Depends(get_session_store)):
    """Start a new consultation and return its first question"""
    demographics = request.demographics if request else None
    session = store.create(demographics)

    routing = engine.advance(session.answers, demographics)
    session.apply_routing(routing)

    return {
        "session_id": session.session_id,
        "routing": routing,
        "total_archetypes": len(engine.bank.archetypes),
        "total_questions": len(engine.bank.questions),
    }


@router.get("/sessions/{session_id}")
async def get_session_status(session_id: str,
                             store: SessionStore = Depends(get_session_store)):
    """Resume point: answers so far, confidence, and the pending question"""
    session = _get_session_or_404(store, session_id)
    return session.get_status()


@router.post("/sessions/{session_id}/answers")
async def submit_answer(session_id: str, request: SubmitAnswerRequest,
                        engine: ArchetypeEngine = Depends(get_engine),
                        store: SessionStore = Depends(get_session_store)):
    """Answer the pending question; returns routing and, when done, the result"""
    session = _get_session_or_404(store, session_id)
    if session.is_complete:
        raise HTTPException(status_code=409, detail="Session is already complete")

    answer = Answer(question_id=request.question_id, option_id=request.option_id)
    if request.question_id != session.current_question_id:
        raise InvalidAnswerError(
            f"Expected an answer to '{session.current_question_id}', got '{request.question_id}'",
            answer=answer, index=len(session.answers)
        )

    # Validate against a copy so a rejected answer leaves the session untouched
    answers = session.answers + [answer]
    routing = engine.advance(answers, session.demographics)
    session.record(answers, routing)

    result = None
    if routing.done:
        result = engine.classify(answers, session.demographics)
        session.complete(result)
        logger.info(
            f"Session {session_id} complete after {len(answers)} answers: "
            f"{result.primary_archetype} ({result.confidence:.1f})"
        )
    else:
        logger.info(f"Session {session_id}: {len(answers)} answers, next {routing.question.id}")

    return {
        "session_id": session_id,
        "routing": routing,
        "result": result,
    }


@router.post("/sessions/{session_id}/complete")
async def complete_session(session_id: str,
                           engine: ArchetypeEngine = Depends(get_engine),
                           store: SessionStore = Depends(get_session_store)):
    """Finish early and classify whatever has been answered"""
    session = _get_session_or_404(store, session_id)
    if not session.is_complete:
        session.complete(engine.classify(session.answers, session.demographics))
        logger.info(f"Session {session_id} finished early after {len(session.answers)} answers")

    return {
        "session_id": session_id,
        "result": session.result,
    }


@router.delete("/sessions/{session_id}")
async def delete_session(session_id: str,
                         store: SessionStore = Depends(get_session_store)):
    """Discard a consultation so the user can start over"""
    if not store.delete(session_id):
        raise HTTPException(status_code=404, detail="Session not found")
    return {"session_id": session_id, "deleted": True}


# CATALOG ENDPOINTS

@router.get("/questions")
async def list_questions(phase: Optional[Phase] = Query(None, description="Only questions in this phase"),
                         engine: ArchetypeEngine = Depends(get_engine)):
    questions = engine.bank.questions_in_phase(phase) if phase else engine.bank.questions
    return {
        "questions": [q.model_dump() for q in questions],
        "total": len(questions),
        "phase": phase.value if phase else None,
    }


@router.get("/questions/{question_id}")
async def get_question(question_id: str, engine: ArchetypeEngine = Depends(get_engine)):
    return engine.bank.question(question_id)


@router.get("/archetypes")
async def list_archetypes(engine: ArchetypeEngine = Depends(get_engine)):
    archetypes = [a.to_summary() for a in engine.bank.archetypes]
    return {"archetypes": archetypes, "total": len(archetypes)}


@router.get("/archetypes/{archetype_id}")
async def get_archetype(archetype_id: str, engine: ArchetypeEngine = Depends(get_engine)):
    return engine.bank.archetype(archetype_id)


# MONITORING ENDPOINTS

@router.get("/health")
async def health_check(engine: ArchetypeEngine = Depends(get_engine),
                       store: SessionStore = Depends(get_session_store)):
    process = psutil.Process()
    summary = engine.bank.summary()

    return {
        "status": "healthy",
        "timestamp": datetime.now().isoformat(),
        "service": "Skin Archetype Consultation",
        "version": "1.0.0",
        "components": {
            **summary,
            "active_sessions": len(store),
            "completed_sessions": store.completed_count(),
        },
        "configuration": {
            "high_confidence_threshold": settings.HIGH_CONFIDENCE_THRESHOLD,
            "medium_confidence_threshold": settings.MEDIUM_CONFIDENCE_THRESHOLD,
            "min_questions": settings.MIN_QUESTIONS,
            "session_ttl_hours": settings.SESSION_TTL_HOURS,
        },
        "process": {
            "memory_mb": round(process.memory_info().rss / (1024 * 1024), 1),
            "system_memory_percent": psutil.virtual_memory().percent,
            "cpu_count": psutil.cpu_count(),
        },
    }


@router.post("/admin/cleanup")
async def cleanup_sessions(max_age_hours: Optional[int] = Query(None, ge=1, le=24 * 30),
                           store: SessionStore = Depends(get_session_store)):
    """Drop sessions idle longer than max_age_hours (default: session TTL)"""
    removed = store.cleanup_expired(max_age_hours)
    logger.info(f"Session cleanup: removed {removed} sessions")

    return {
        "sessions_removed": removed,
        "sessions_remaining": len(store),
        "max_age_hours": max_age_hours or store.ttl_hours,
        "timestamp": datetime.now().isoformat()
    }
