"""
Coaching session phase machine.

A session moves strictly forward:

    SelectPrinciple -> DescribeSituation -> SelectWedge -> Coaching
        -> Commitment -> Feedback -> Done

Each phase is a frozen dataclass carrying only the fields that are valid in
that phase. Reducers take a state and return a new one; they never mutate.
Calling a reducer in the wrong phase raises InvalidTransition. Blank input
raises EmptyInput. A crisis match returns the same phase with crisis=True.
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Optional, Tuple, Union

from ledger.services.crisis import detect_crisis
from ledger.services.frameworks import Framework, WedgeLabel
from ledger.services.markers import message_text, parse_commitment_options


class InvalidTransition(Exception):
    """Raised when an action is not allowed in the current phase."""
    pass


class EmptyInput(ValueError):
    """Raised for blank user submissions."""
    pass


class SessionPhase(str, Enum):
    SELECT_PRINCIPLE = "select_principle"
    DESCRIBE_SITUATION = "describe_situation"
    SELECT_WEDGE = "select_wedge"
    COACHING = "coaching"
    COMMITMENT = "commitment"
    FEEDBACK = "feedback"
    DONE = "done"


class Role(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


@dataclass(frozen=True)
class ChatMessage:
    role: Role
    parts: Tuple[str, ...]

    @property
    def text(self) -> str:
        return message_text(self.parts)

    @classmethod
    def user(cls, text: str) -> "ChatMessage":
        return cls(role=Role.USER, parts=(text,))

    @classmethod
    def assistant(cls, text: str) -> "ChatMessage":
        return cls(role=Role.ASSISTANT, parts=(text,))


@dataclass(frozen=True)
class PrincipleRef:
    id: int
    text: str


@dataclass(frozen=True)
class SelectPrinciple:
    framework: Framework
    phase = SessionPhase.SELECT_PRINCIPLE


@dataclass(frozen=True)
class DescribeSituation:
    framework: Framework
    principle: PrincipleRef
    crisis: bool = False
    phase = SessionPhase.DESCRIBE_SITUATION


@dataclass(frozen=True)
class SelectWedge:
    framework: Framework
    principle: PrincipleRef
    situation: str
    phase = SessionPhase.SELECT_WEDGE


@dataclass(frozen=True)
class Coaching:
    framework: Framework
    principle: PrincipleRef
    situation: str
    wedge: WedgeLabel
    messages: Tuple[ChatMessage, ...] = field(default_factory=tuple)
    crisis: bool = False
    phase = SessionPhase.COACHING


@dataclass(frozen=True)
class Commitment:
    framework: Framework
    principle: PrincipleRef
    situation: str
    wedge: WedgeLabel
    messages: Tuple[ChatMessage, ...]
    options: Tuple[str, ...]
    phase = SessionPhase.COMMITMENT


@dataclass(frozen=True)
class Feedback:
    framework: Framework
    principle: PrincipleRef
    situation: str
    wedge: WedgeLabel
    messages: Tuple[ChatMessage, ...]
    commitment: str
    phase = SessionPhase.FEEDBACK


@dataclass(frozen=True)
class Done:
    framework: Framework
    principle: PrincipleRef
    situation: str
    wedge: WedgeLabel
    messages: Tuple[ChatMessage, ...]
    commitment: str
    feedback: int
    session_id: int
    phase = SessionPhase.DONE


SessionState = Union[
    SelectPrinciple,
    DescribeSituation,
    SelectWedge,
    Coaching,
    Commitment,
    Feedback,
    Done,
]


def _expect(state: SessionState, phase_type: type):
    if not isinstance(state, phase_type):
        raise InvalidTransition(
            f"cannot do that during {state.phase.value}; expected {phase_type.phase.value}"
        )


def _require_text(text: str) -> str:
    text = (text or "").strip()
    if not text:
        raise EmptyInput("submission is empty")
    return text


def start_session(framework: Framework) -> SelectPrinciple:
    return SelectPrinciple(framework=framework)


def select_principle(state: SessionState, principle: PrincipleRef) -> DescribeSituation:
    _expect(state, SelectPrinciple)
    return DescribeSituation(framework=state.framework, principle=principle)


def submit_situation(state: SessionState, text: str) -> Union[DescribeSituation, SelectWedge]:
    _expect(state, DescribeSituation)
    situation = _require_text(text)
    if detect_crisis(situation):
        return replace(state, crisis=True)
    return SelectWedge(
        framework=state.framework,
        principle=state.principle,
        situation=situation,
    )


def opening_message(wedge: WedgeLabel, situation: str) -> str:
    return f"I'm dealing with a {wedge.value.lower()} situation. Here's what happened: {situation}"


def select_wedge(state: SessionState, wedge: WedgeLabel) -> Coaching:
    """Enter coaching with the synthesized first user message already queued."""
    _expect(state, SelectWedge)
    wedge = WedgeLabel(wedge)
    return Coaching(
        framework=state.framework,
        principle=state.principle,
        situation=state.situation,
        wedge=wedge,
        messages=(ChatMessage.user(opening_message(wedge, state.situation)),),
    )


def add_user_turn(state: SessionState, text: str) -> Coaching:
    _expect(state, Coaching)
    message = _require_text(text)
    if detect_crisis(message):
        return replace(state, crisis=True)
    return replace(state, messages=state.messages + (ChatMessage.user(message),), crisis=False)


def complete_assistant_turn(state: SessionState, text: str) -> Union[Coaching, Commitment]:
    """Record a finished assistant reply; move to Commitment once options appear."""
    _expect(state, Coaching)
    messages = state.messages + (ChatMessage.assistant(text),)
    options = parse_commitment_options(text)
    if not options:
        return replace(state, messages=messages, crisis=False)
    return Commitment(
        framework=state.framework,
        principle=state.principle,
        situation=state.situation,
        wedge=state.wedge,
        messages=messages,
        options=tuple(options),
    )


def select_commitment(state: SessionState, index: int) -> Feedback:
    _expect(state, Commitment)
    if not 0 <= index < len(state.options):
        raise IndexError(f"commitment option {index} out of range")
    return Feedback(
        framework=state.framework,
        principle=state.principle,
        situation=state.situation,
        wedge=state.wedge,
        messages=state.messages,
        commitment=state.options[index],
    )


def record_feedback(state: SessionState, value: int, session_id: int) -> Done:
    _expect(state, Feedback)
    if value not in (0, 1):
        raise ValueError("feedback must be 0 or 1")
    return Done(
        framework=state.framework,
        principle=state.principle,
        situation=state.situation,
        wedge=state.wedge,
        messages=state.messages,
        commitment=state.commitment,
        feedback=value,
        session_id=session_id,
    )


def coaching_script(state: SessionState) -> str:
    """All assistant replies of the session, separated by blank lines."""
    messages = getattr(state, "messages", ())
    return "\n\n".join(m.text for m in messages if m.role == Role.ASSISTANT)


