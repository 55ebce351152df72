"""
Coaching session API.

Walks one user at a time through principle -> situation -> wedge -> coaching
chat -> commitment -> feedback. In-progress sessions are held in memory and
only written to the database when feedback is submitted; abandoning a session
discards it.
"""

import logging
import random
from typing import Dict, List

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import StreamingResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ledger.api.auth import get_current_user
from ledger.api.streaming import SSE_HEADERS, ConversationSlot, sse_event
from ledger.db import get_db
from ledger.models import CoachingSession, FollowUpStatus, User
from ledger.schema.request import (
    CommitmentRequest,
    FeedbackRequest,
    FollowUpRequest,
    MessageRequest,
    SelectPrincipleRequest,
    SituationRequest,
    WedgeRequest,
)
from ledger.schema.response import (
    CoachingSessionRead,
    FrameworkRead,
    MessageRead,
    PrincipleRead,
    PrincipleRefRead,
    SessionStateRead,
)
from ledger.services.chat_backend import AssistantTurn, ChatBackend, get_chat_backend, relay_turn
from ledger.services.crisis import CRISIS_MESSAGE
from ledger.services.follow_up import FollowUpAlreadyResolved
from ledger.services.frameworks import FRAMEWORKS, FRAMEWORKS_BY_ID, pick_framework
from ledger.services.markers import display_text
from ledger.services.principle_service import get_owned_principle, list_user_principles
from ledger.services.prompts import build_coaching_prompt
from ledger.services.session_machine import (
    Coaching,
    EmptyInput,
    Feedback,
    InvalidTransition,
    PrincipleRef,
    Role,
    SessionState,
    add_user_turn,
    complete_assistant_turn,
    record_feedback,
    select_commitment,
    select_principle,
    select_wedge,
    start_session,
    submit_situation,
)
from ledger.services.session_service import (
    get_owned_session,
    list_user_sessions,
    record_follow_up,
    save_coaching_session,
)

logger = logging.getLogger("ledger.sessions")

router = APIRouter(prefix="/sessions", tags=["sessions"])

# In-memory storage for in-progress sessions, keyed by user id
active_sessions: Dict[int, ConversationSlot[SessionState]] = {}


def get_random() -> random.Random:
    """Random source for framework selection; overridden in tests."""
    return random.Random()


def session_read(record: CoachingSession) -> CoachingSessionRead:
    read = CoachingSessionRead.model_validate(record)
    framework = FRAMEWORKS_BY_ID.get(record.framework_used)
    read.framework_label = framework.label if framework else None
    return read


def state_read(slot: ConversationSlot[SessionState]) -> SessionStateRead:
    state = slot.state
    principle = getattr(state, "principle", None)
    wedge = getattr(state, "wedge", None)
    crisis = getattr(state, "crisis", False)
    return SessionStateRead(
        phase=state.phase.value,
        framework=FrameworkRead(id=state.framework.id, label=state.framework.label),
        principle=PrincipleRefRead(id=principle.id, text=principle.text) if principle else None,
        situation=getattr(state, "situation", None),
        wedge=wedge.value if wedge else None,
        messages=[
            MessageRead(
                role=m.role.value,
                text=display_text(m.text) if m.role == Role.ASSISTANT else m.text,
            )
            for m in getattr(state, "messages", ())
        ],
        options=list(getattr(state, "options", ())),
        commitment=getattr(state, "commitment", None),
        feedback=getattr(state, "feedback", None),
        session_id=getattr(state, "session_id", None),
        crisis=crisis,
        crisis_message=CRISIS_MESSAGE if crisis else None,
        streaming=slot.streaming,
    )


def _get_slot(user: User) -> ConversationSlot[SessionState]:
    slot = active_sessions.get(user.id)
    if slot is None:
        raise HTTPException(status_code=404, detail="No active coaching session. Start with /sessions/start first.")
    return slot


def _apply(reducer, *args):
    """Run a reducer, mapping its errors to HTTP responses."""
    try:
        return reducer(*args)
    except InvalidTransition as e:
        raise HTTPException(status_code=409, detail=str(e))
    except EmptyInput as e:
        raise HTTPException(status_code=422, detail=str(e))
    except (IndexError, ValueError) as e:
        raise HTTPException(status_code=422, detail=str(e))


async def _coaching_events(user_id: int, slot: ConversationSlot, pending: Coaching, backend: ChatBackend):
    """
    Relay one coaching reply as SSE. The slot only takes the new state once
    the reply finished streaming; a cancelled or failed stream leaves the
    pre-send state in place.
    """
    slot.streaming = True
    turn = AssistantTurn()
    prompt = build_coaching_prompt(
        pending.principle.text,
        pending.situation,
        pending.wedge.value,
        pending.framework,
    )
    try:
        yield sse_event("start", {"phase": pending.phase.value})
        async for chunk in relay_turn(backend, prompt, pending.messages, turn):
            yield sse_event("chunk", {"text": chunk})

        # options are only parsed from a complete reply
        slot.state = complete_assistant_turn(pending, turn.text)
        options = list(getattr(slot.state, "options", ()))
        logger.info(
            "coaching_turn_completed",
            extra={"user_id": user_id, "phase": slot.state.phase.value, "options": len(options)},
        )
        yield sse_event("done", {
            "phase": slot.state.phase.value,
            "text": display_text(turn.text),
            "options": options,
        })
    except Exception:
        logger.exception("coaching_stream_failed", extra={"user_id": user_id})
        raise
    finally:
        slot.streaming = False


def _stream(user: User, slot: ConversationSlot, pending: Coaching, backend: ChatBackend) -> StreamingResponse:
    return StreamingResponse(
        _coaching_events(user.id, slot, pending, backend),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )


@router.post("/start")
async def start(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    rng: random.Random = Depends(get_random),
):
    """
    Begin a coaching session. The framework is fixed here for the whole
    session. Replaces any unfinished session.
    """
    existing = active_sessions.get(user.id)
    if existing is not None:
        existing.ensure_idle()

    framework = pick_framework(FRAMEWORKS, rng)
    slot = ConversationSlot(state=start_session(framework))
    active_sessions[user.id] = slot

    principles = await list_user_principles(db, user.id)
    logger.info("session_started", extra={"user_id": user.id, "framework": framework.id})

    return {
        "session": state_read(slot),
        "principles": [PrincipleRead.model_validate(p) for p in principles],
        "next_action": "select_principle" if principles else "onboarding",
    }


@router.get("/current", response_model=SessionStateRead)
async def current(user: User = Depends(get_current_user)):
    return state_read(_get_slot(user))


@router.delete("/current")
async def abandon(user: User = Depends(get_current_user)):
    slot = _get_slot(user)
    slot.ensure_idle()
    del active_sessions[user.id]
    return {"status": "abandoned"}


@router.post("/current/principle", response_model=SessionStateRead)
async def choose_principle(
    body: SelectPrincipleRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    slot = _get_slot(user)
    slot.ensure_idle()
    principle = await get_owned_principle(db, user.id, body.principle_id)
    if principle is None:
        raise HTTPException(status_code=404, detail="Principle not found")

    slot.state = _apply(select_principle, slot.state, PrincipleRef(id=principle.id, text=principle.text))
    return state_read(slot)


@router.post("/current/situation", response_model=SessionStateRead)
async def describe_situation(
    body: SituationRequest,
    user: User = Depends(get_current_user),
):
    slot = _get_slot(user)
    slot.ensure_idle()
    slot.state = _apply(submit_situation, slot.state, body.situation)
    if getattr(slot.state, "crisis", False):
        logger.warning("crisis_gate_tripped", extra={"user_id": user.id, "phase": slot.state.phase.value})
    return state_read(slot)


@router.post("/current/wedge")
async def choose_wedge(
    body: WedgeRequest,
    user: User = Depends(get_current_user),
    backend: ChatBackend = Depends(get_chat_backend),
):
    """Select the wedge and stream the coach's first reply."""
    slot = _get_slot(user)
    slot.ensure_idle()
    pending = _apply(select_wedge, slot.state, body.wedge)
    return _stream(user, slot, pending, backend)


@router.post("/current/chat")
async def chat(
    body: MessageRequest,
    user: User = Depends(get_current_user),
    backend: ChatBackend = Depends(get_chat_backend),
):
    """
    Send a follow-up message during coaching. A crisis match returns the
    session state with the safety message instead of a stream.
    """
    slot = _get_slot(user)
    slot.ensure_idle()
    pending = _apply(add_user_turn, slot.state, body.message)
    if pending.crisis:
        slot.state = pending
        logger.warning("crisis_gate_tripped", extra={"user_id": user.id, "phase": pending.phase.value})
        return state_read(slot)
    return _stream(user, slot, pending, backend)


@router.post("/current/commitment", response_model=SessionStateRead)
async def choose_commitment(
    body: CommitmentRequest,
    user: User = Depends(get_current_user),
):
    slot = _get_slot(user)
    slot.ensure_idle()
    slot.state = _apply(select_commitment, slot.state, body.option)
    return state_read(slot)


@router.post("/current/feedback", response_model=SessionStateRead)
async def submit_feedback(
    body: FeedbackRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """
    Rate the session and store it. Exactly one write per session: a second
    submission is refused while the first is saving and after it succeeded.
    """
    user_id = user.id
    slot = _get_slot(user)
    slot.ensure_idle()
    state = slot.state
    if not isinstance(state, Feedback):
        raise HTTPException(status_code=409, detail=f"cannot submit feedback during {state.phase.value}")

    slot.saving = True
    try:
        record = await save_coaching_session(db, user_id, state, body.value)
    except SQLAlchemyError:
        # rollback expires every loaded instance, user included
        await db.rollback()
        logger.exception("session_save_failed", extra={"user_id": user_id})
        raise HTTPException(status_code=503, detail="Could not save your session. Please try again.")
    finally:
        slot.saving = False

    slot.state = record_feedback(state, body.value, record.id)
    logger.info("session_saved", extra={"user_id": user_id, "session_id": record.id})
    return state_read(slot)


@router.get("", response_model=List[CoachingSessionRead])
async def list_sessions(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return [session_read(s) for s in await list_user_sessions(db, user.id)]


@router.get("/follow-ups", response_model=List[CoachingSessionRead])
async def pending_follow_ups(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    sessions = await list_user_sessions(db, user.id)
    return [
        session_read(s) for s in sessions
        if s.follow_up_status == FollowUpStatus.pending and s.commitment
    ]


@router.post("/{session_id}/follow-up", response_model=CoachingSessionRead)
async def check_in(
    session_id: int,
    body: FollowUpRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Record whether the commitment was carried out. Only the first check-in counts."""
    record = await get_owned_session(db, user.id, session_id)
    if record is None:
        raise HTTPException(status_code=404, detail="Session not found")

    try:
        record = await record_follow_up(db, record, FollowUpStatus(body.status), body.note)
    except FollowUpAlreadyResolved:
        raise HTTPException(status_code=409, detail="Follow-up already recorded")

    logger.info("follow_up_recorded", extra={"user_id": user.id, "session_id": session_id, "status": body.status})
    return session_read(record)
