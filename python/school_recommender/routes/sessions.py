from fastapi import APIRouter, Depends, HTTPException

from ..dependencies import get_session, get_session_registry
from ..models import (
    AverageMarkRequest, ChatTranscript, ChatTurnRequest, RecommendationFormState,
    SessionSnapshot, SubjectEditRequest, SubjectEntry, SubmitOutcome, SubmitResponse,
)
from ..services.session_registry import AdvisorSession, SessionRegistry

router = APIRouter(
    prefix="/api/sessions",
    tags=["sessions"],
)

@router.post("", response_model=SessionSnapshot, status_code=201)
async def create_session(registry: SessionRegistry = Depends(get_session_registry)):
    return registry.create().snapshot()

@router.get("/{session_id}", response_model=SessionSnapshot)
async def read_session(session: AdvisorSession = Depends(get_session)):
    return session.snapshot()

@router.delete("/{session_id}", status_code=204)
async def delete_session(session_id: str, registry: SessionRegistry = Depends(get_session_registry)):
    if registry.drop(session_id) is None:
        raise HTTPException(status_code=404, detail=f"Session {session_id} not found")

# === Marks form ===

@router.post("/{session_id}/subjects", response_model=SubjectEntry, status_code=201)
async def add_subject(session: AdvisorSession = Depends(get_session)):
    return session.recommendations.add_subject()

@router.patch("/{session_id}/subjects/{entry_id}", response_model=SubjectEntry)
async def edit_subject(entry_id: int, edit: SubjectEditRequest, session: AdvisorSession = Depends(get_session)):
    try:
        return session.recommendations.edit_subject(entry_id, edit.field, edit.value)
    except KeyError:
        raise HTTPException(status_code=404, detail=f"Subject {entry_id} not found")

@router.delete("/{session_id}/subjects/{entry_id}", response_model=RecommendationFormState)
async def remove_subject(entry_id: int, session: AdvisorSession = Depends(get_session)):
    orchestrator = session.recommendations
    if not orchestrator.remove_subject(entry_id):
        if all(s.id != entry_id for s in orchestrator.subjects):
            raise HTTPException(status_code=404, detail=f"Subject {entry_id} not found")
        raise HTTPException(status_code=409, detail="At least one subject row is required")
    return orchestrator.snapshot()

@router.put("/{session_id}/average", response_model=RecommendationFormState)
async def set_average(body: AverageMarkRequest, session: AdvisorSession = Depends(get_session)):
    session.recommendations.set_average_mark(body.value)
    return session.recommendations.snapshot()

@router.post("/{session_id}/recommendations", response_model=SubmitResponse)
async def submit_recommendations(session: AdvisorSession = Depends(get_session)):
    """
    Validate the form and ask the provider for institutions.
    Validation and provider failures are reported in the body, not as HTTP errors.
    """
    outcome = await session.recommendations.submit()
    return SubmitResponse(
        success=outcome == SubmitOutcome.SUCCESS,
        outcome=outcome,
        form=session.recommendations.snapshot(),
    )

@router.post("/{session_id}/reset", response_model=RecommendationFormState)
async def reset_form(session: AdvisorSession = Depends(get_session)):
    session.recommendations.reset()
    return session.recommendations.snapshot()

# === Counselor chat ===

@router.get("/{session_id}/chat", response_model=ChatTranscript)
async def read_transcript(session: AdvisorSession = Depends(get_session)):
    return session.chat.snapshot()

@router.post("/{session_id}/chat", response_model=ChatTranscript)
async def send_chat_turn(body: ChatTurnRequest, session: AdvisorSession = Depends(get_session)):
    await session.chat.send_turn(body.message)
    return session.chat.snapshot()

@router.delete("/{session_id}/chat", response_model=ChatTranscript)
async def clear_chat(session: AdvisorSession = Depends(get_session)):
    session.chat.clear()
    return session.chat.snapshot()
