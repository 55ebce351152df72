"""
Onboarding conversation: regret -> principle -> confirmation.

    OnboardingStart -> Conversing -> Confirmed

The assistant confirms a principle with the PRINCIPLE_CONFIRMED marker.
Confirmation is one-shot: a Confirmed conversation accepts no more turns, so
a marker repeated later can never persist a second principle.
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Optional, Tuple, Union

from ledger.services.crisis import detect_crisis
from ledger.services.session_machine import (
    ChatMessage,
    EmptyInput,
    InvalidTransition,
    Role,
)

OPENING_PROMPT = (
    "Let's build your first leadership principle. "
    "Think of a recent moment you handled poorly, something you're still annoyed "
    "at yourself about. Describe it in one sentence."
)


class OnboardingPhase(str, Enum):
    START = "start"
    CONVERSING = "conversing"
    CONFIRMED = "confirmed"


@dataclass(frozen=True)
class OnboardingStart:
    crisis: bool = False
    phase = OnboardingPhase.START


@dataclass(frozen=True)
class Conversing:
    messages: Tuple[ChatMessage, ...] = field(default_factory=tuple)
    crisis: bool = False
    # detected by the parser but not yet stored
    unsaved_principle: Optional[str] = None
    phase = OnboardingPhase.CONVERSING


@dataclass(frozen=True)
class Confirmed:
    messages: Tuple[ChatMessage, ...]
    principle_text: str
    principle_id: int
    phase = OnboardingPhase.CONFIRMED


OnboardingState = Union[OnboardingStart, Conversing, Confirmed]


def add_user_turn(state: OnboardingState, text: str) -> Union[OnboardingStart, Conversing]:
    if isinstance(state, Confirmed):
        raise InvalidTransition("principle already confirmed")
    if isinstance(state, Conversing) and state.unsaved_principle:
        raise InvalidTransition("principle detected; confirm it before continuing")

    message = (text or "").strip()
    if not message:
        raise EmptyInput("submission is empty")
    if detect_crisis(message):
        return replace(state, crisis=True)

    messages = state.messages if isinstance(state, Conversing) else ()
    return Conversing(messages=messages + (ChatMessage.user(message),))


def complete_assistant_turn(state: OnboardingState, text: str) -> Conversing:
    if not isinstance(state, Conversing):
        raise InvalidTransition(f"cannot record a reply during {state.phase.value}")
    return replace(state, messages=state.messages + (ChatMessage.assistant(text),))


def hold_principle(state: OnboardingState, principle_text: str) -> Conversing:
    """Keep a detected principle whose write failed so it can be retried."""
    if not isinstance(state, Conversing):
        raise InvalidTransition(f"cannot hold a principle during {state.phase.value}")
    return replace(state, unsaved_principle=principle_text)


def confirm(state: OnboardingState, principle_text: str, principle_id: int) -> Confirmed:
    if not isinstance(state, Conversing):
        raise InvalidTransition(f"cannot confirm during {state.phase.value}")
    return Confirmed(
        messages=state.messages,
        principle_text=principle_text,
        principle_id=principle_id,
    )


def is_confirmed(state: OnboardingState) -> bool:
    return isinstance(state, Confirmed)


def regret_and_better_version(messages: Tuple[ChatMessage, ...]) -> Tuple[str, str]:
    """First user message is the regret, the second the better version."""
    user_texts = [m.text for m in messages if m.role == Role.USER]
    source_regret = user_texts[0] if user_texts else ""
    better_version = user_texts[1] if len(user_texts) > 1 else ""
    return source_regret, better_version
