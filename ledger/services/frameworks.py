"""
Coaching frameworks and wedge labels.

A session applies exactly one framework, picked when the session starts.
Selection takes an explicit random source so it can be replayed in tests.
"""

import random
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Sequence


class EmptyPoolError(ValueError):
    """Raised when no framework is left to pick from."""
    pass


@dataclass(frozen=True)
class Framework:
    id: str
    label: str
    instruction: str


FRAMEWORKS: tuple[Framework, ...] = (
    Framework(
        id="behavioral",
        label="Behavioral",
        instruction="Give ONE concrete micro-action the user can take in the next 24 hours.",
    ),
    Framework(
        id="socratic",
        label="Socratic",
        instruction="Ask TWO powerful questions the user should ask themselves before their next interaction.",
    ),
    Framework(
        id="visualization",
        label="Visualization",
        instruction="Guide a brief mental rehearsal of how the user would handle this situation perfectly next time.",
    ),
    Framework(
        id="contrarian",
        label="Contrarian",
        instruction="Explain what the user's principle does NOT mean, to sharpen their understanding of it.",
    ),
    Framework(
        id="stakes",
        label="Stakes Framing",
        instruction="Clarify what is actually at risk if the user does not follow their principle in this situation.",
    ),
    Framework(
        id="story",
        label="Story/Analogy",
        instruction="Tell a brief third-person story or analogy that illustrates the user's principle in action.",
    ),
    Framework(
        id="micro_commitment",
        label="Micro-Commitment",
        instruction="Suggest one tiny thing the user can do right now (under 2 minutes) that aligns with their principle.",
    ),
)

FRAMEWORKS_BY_ID = {f.id: f for f in FRAMEWORKS}


class WedgeLabel(str, Enum):
    MEETING = "Meeting"
    PRESENTATION = "Presentation"
    CONFLICT = "Conflict"
    PROCRASTINATION = "Procrastination"
    ANXIETY = "Anxiety"


def pick_framework(
    pool: Sequence[Framework],
    rng: random.Random,
    exclude_id: Optional[str] = None,
) -> Framework:
    """Uniformly pick one framework from the pool, skipping exclude_id."""
    available = [f for f in pool if f.id != exclude_id]
    if not available:
        raise EmptyPoolError(f"no framework available (excluded: {exclude_id})")
    return rng.choice(available)
