"""
Marker protocol carried inside assistant text.

The chat model signals control events with literal markers in its reply:

    PRINCIPLE_CONFIRMED: <principle text, single line>

    COMMITMENT_OPTIONS:
    1. <option text>
    2. <option text>
    3. <option text>

Markers are matched anywhere in the text, not only at the start of a line.
A reply without markers is the normal case and yields no signal. A marker
whose content trims to nothing is treated the same as no marker.
"""

import re
from typing import Iterable, List, Optional

PRINCIPLE_MARKER = "PRINCIPLE_CONFIRMED:"
COMMITMENT_MARKER = "COMMITMENT_OPTIONS:"
MAX_COMMITMENT_OPTIONS = 3

_NUMBERING = re.compile(r"^\d+\.\s*")
_LINE_BREAK = re.compile(r"[\r\n]")


def message_text(parts: Iterable[str]) -> str:
    return "".join(parts)


def parse_principle(text: str, complete: bool = True) -> Optional[str]:
    """
    Return the confirmed principle, or None if there is no usable marker.

    With complete=False the text is still streaming, so the principle line
    only counts once a line break has closed it.
    """
    head, sep, tail = text.partition(PRINCIPLE_MARKER)
    if not sep:
        return None

    match = _LINE_BREAK.search(tail)
    if match is None and not complete:
        return None

    line = tail[:match.start()] if match else tail
    principle = line.strip()
    return principle or None


def parse_commitment_options(text: str) -> List[str]:
    """
    Extract up to three de-numbered options following the commitment marker.
    Only call this on a finished reply; a partial line would be taken as-is.
    """
    head, sep, block = text.partition(COMMITMENT_MARKER)
    if not sep:
        return []

    options = []
    for line in block.splitlines():
        option = _NUMBERING.sub("", line.strip()).strip()
        if option:
            options.append(option)
    return options[:MAX_COMMITMENT_OPTIONS]


def display_text(text: str) -> str:
    """Assistant text as shown to the user, with marker lines and blocks removed."""
    shown = text.split(COMMITMENT_MARKER, 1)[0]

    head, sep, tail = shown.partition(PRINCIPLE_MARKER)
    if sep:
        match = _LINE_BREAK.search(tail)
        rest = tail[match.end():] if match else ""
        shown = head.rstrip() + ("\n" + rest.lstrip() if rest.strip() else "")

    return shown.strip()
