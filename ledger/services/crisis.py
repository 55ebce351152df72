"""
Crisis keyword gate.

A naive substring filter, not a classifier: phrasing outside the keyword list
passes through undetected. Callers treat a match as a hard stop for the
current submission and show CRISIS_MESSAGE instead of sending anything on.
"""

CRISIS_KEYWORDS = (
    "suicide",
    "suicidal",
    "kill myself",
    "end my life",
    "self-harm",
    "self harm",
    "want to die",
    "don't want to live",
    "hurt myself",
    "no reason to live",
)

CRISIS_MESSAGE = (
    "It sounds like you might be going through something serious. "
    "If you are in crisis, please reach out to the 988 Suicide & Crisis Lifeline "
    "(call or text 988, https://988lifeline.org). "
    "This tool is for leadership coaching, not crisis support."
)

DISCLAIMER = (
    "This is a leadership coaching tool, not therapy. If you are in crisis, "
    "please contact the 988 Suicide & Crisis Lifeline (https://988lifeline.org)."
)


def detect_crisis(text: str) -> bool:
    lower = text.lower()
    return any(keyword in lower for keyword in CRISIS_KEYWORDS)
