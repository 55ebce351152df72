"""
API endpoints for the onboarding conversation.
Turns a regret into a confirmed leadership principle through a short chat.
"""

import logging
from dataclasses import replace
from typing import Dict

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import StreamingResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ledger.api.auth import get_current_user
from ledger.api.streaming import SSE_HEADERS, ConversationSlot, sse_event
from ledger.db import async_session, get_db
from ledger.models import User
from ledger.schema.request import MessageRequest
from ledger.schema.response import MessageRead, OnboardingStateRead
from ledger.services.chat_backend import AssistantTurn, ChatBackend, get_chat_backend, relay_turn
from ledger.services.crisis import CRISIS_MESSAGE
from ledger.services.markers import display_text, parse_principle
from ledger.services.onboarding import (
    OPENING_PROMPT,
    Confirmed,
    Conversing,
    OnboardingStart,
    OnboardingState,
    add_user_turn,
    complete_assistant_turn,
    confirm,
    hold_principle,
    is_confirmed,
    regret_and_better_version,
)
from ledger.services.principle_service import save_confirmed_principle
from ledger.services.prompts import build_onboarding_prompt
from ledger.services.session_machine import EmptyInput, InvalidTransition, Role

logger = logging.getLogger("ledger.onboarding")

router = APIRouter(prefix="/onboarding", tags=["onboarding"])

# In-memory storage for active onboarding conversations, keyed by user id
active_onboarding: Dict[int, ConversationSlot[OnboardingState]] = {}


def state_read(slot: ConversationSlot[OnboardingState]) -> OnboardingStateRead:
    state = slot.state
    crisis = getattr(state, "crisis", False)
    return OnboardingStateRead(
        phase=state.phase.value,
        messages=[
            MessageRead(
                role=m.role.value,
                text=display_text(m.text) if m.role == Role.ASSISTANT else m.text,
            )
            for m in getattr(state, "messages", ())
        ],
        crisis=crisis,
        crisis_message=CRISIS_MESSAGE if crisis else None,
        unsaved_principle=getattr(state, "unsaved_principle", None),
        principle_id=getattr(state, "principle_id", None),
        principle_text=getattr(state, "principle_text", None),
        streaming=slot.streaming,
    )


def _get_slot(user: User) -> ConversationSlot[OnboardingState]:
    slot = active_onboarding.get(user.id)
    if slot is None:
        raise HTTPException(status_code=404, detail="No active onboarding session. Start with /onboarding/start first.")
    return slot


async def _store_principle(user_id: int, state: Conversing, principle: str) -> OnboardingState:
    """
    Persist a detected principle. On a failed write the principle is held on
    the conversation so POST /onboarding/confirm can retry it.
    """
    source_regret, better_version = regret_and_better_version(state.messages)
    try:
        async with async_session() as db:
            record = await save_confirmed_principle(db, user_id, principle, source_regret, better_version)
    except SQLAlchemyError:
        logger.exception("principle_save_failed", extra={"user_id": user_id})
        return hold_principle(state, principle)

    logger.info("principle_confirmed", extra={"user_id": user_id, "principle_id": record.id})
    return confirm(state, principle, record.id)


async def _onboarding_events(user_id: int, slot: ConversationSlot, pending: Conversing, backend: ChatBackend):
    """
    Relay one onboarding reply as SSE.

    The principle marker is checked after every chunk so confirmation is
    stored as soon as its line is complete; `principle` makes that a
    one-time side effect for this reply.
    """
    slot.streaming = True
    turn = AssistantTurn()
    principle = None
    try:
        yield sse_event("start", {"phase": pending.phase.value})
        async for chunk in relay_turn(backend, build_onboarding_prompt(), pending.messages, turn):
            yield sse_event("chunk", {"text": chunk})
            if principle is None:
                principle = parse_principle(turn.text, complete=False)
                if principle:
                    slot.state = await _store_principle(user_id, pending, principle)

        finished = complete_assistant_turn(pending, turn.text)
        if principle is None:
            principle = parse_principle(turn.text)
            if principle:
                slot.state = await _store_principle(user_id, finished, principle)
            else:
                slot.state = finished
        elif is_confirmed(slot.state):
            slot.state = replace(slot.state, messages=finished.messages)
        else:
            slot.state = hold_principle(finished, principle)

        yield sse_event("done", {
            "phase": slot.state.phase.value,
            "text": display_text(turn.text),
            "principle": principle,
            "save_failed": bool(principle) and not is_confirmed(slot.state),
        })
    except Exception:
        logger.exception("onboarding_stream_failed", extra={"user_id": user_id})
        raise
    finally:
        slot.streaming = False


@router.post("/start", response_model=OnboardingStateRead)
async def start_onboarding(user: User = Depends(get_current_user)):
    """
    Begin an onboarding conversation. An unfinished conversation is returned
    as-is; a confirmed one is replaced so the user can add another principle.
    """
    slot = active_onboarding.get(user.id)
    if slot is not None and not isinstance(slot.state, Confirmed):
        return state_read(slot)

    slot = ConversationSlot(state=OnboardingStart())
    active_onboarding[user.id] = slot
    logger.info("onboarding_started", extra={"user_id": user.id})
    return state_read(slot)


@router.get("/prompt")
async def opening_prompt():
    return {"prompt": OPENING_PROMPT}


@router.post("/respond")
async def respond(
    body: MessageRequest,
    user: User = Depends(get_current_user),
    backend: ChatBackend = Depends(get_chat_backend),
):
    """
    Send the next user message and stream the coach's reply. A crisis match
    returns the conversation state with the safety message instead.
    """
    slot = _get_slot(user)
    slot.ensure_idle()
    try:
        pending = add_user_turn(slot.state, body.message)
    except InvalidTransition as e:
        raise HTTPException(status_code=409, detail=str(e))
    except EmptyInput as e:
        raise HTTPException(status_code=422, detail=str(e))

    if pending.crisis:
        slot.state = pending
        logger.warning("crisis_gate_tripped", extra={"user_id": user.id, "phase": pending.phase.value})
        return state_read(slot)

    return StreamingResponse(
        _onboarding_events(user.id, slot, pending, backend),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )


@router.post("/confirm", response_model=OnboardingStateRead)
async def retry_confirm(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Retry storing a principle whose first write failed."""
    user_id = user.id
    slot = _get_slot(user)
    slot.ensure_idle()
    state = slot.state
    if not isinstance(state, Conversing) or not state.unsaved_principle:
        raise HTTPException(status_code=409, detail="No unsaved principle to confirm")

    source_regret, better_version = regret_and_better_version(state.messages)
    slot.saving = True
    try:
        record = await save_confirmed_principle(
            db, user_id, state.unsaved_principle, source_regret, better_version
        )
    except SQLAlchemyError:
        # rollback expires every loaded instance, user included
        await db.rollback()
        logger.exception("principle_save_failed", extra={"user_id": user_id})
        raise HTTPException(status_code=503, detail="Could not save your principle. Please try again.")
    finally:
        slot.saving = False

    slot.state = confirm(state, state.unsaved_principle, record.id)
    logger.info("principle_confirmed", extra={"user_id": user_id, "principle_id": record.id})
    return state_read(slot)


@router.get("/status", response_model=OnboardingStateRead)
async def get_onboarding_status(user: User = Depends(get_current_user)):
    return state_read(_get_slot(user))
