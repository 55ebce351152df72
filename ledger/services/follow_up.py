"""
Follow-up check-in for a finished coaching session.

A follow-up is either Pending or Resolved; resolving happens once and the
first recorded answer wins.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Union

from ledger.models import CoachingSession, FollowUpStatus


class FollowUpAlreadyResolved(Exception):
    """Raised when a check-in is recorded for an already resolved follow-up."""
    pass


@dataclass(frozen=True)
class Pending:
    pass


@dataclass(frozen=True)
class Resolved:
    status: FollowUpStatus
    note: Optional[str]
    followed_up_at: datetime


FollowUp = Union[Pending, Resolved]


def follow_up_of(record: CoachingSession) -> Optional[FollowUp]:
    """Read the follow-up stored on a session row; None when there is nothing to check in on."""
    if record.follow_up_status is None:
        return None
    if record.follow_up_status == FollowUpStatus.pending:
        return Pending()
    return Resolved(
        status=FollowUpStatus(record.follow_up_status),
        note=record.follow_up_note,
        followed_up_at=record.followed_up_at,
    )


def resolve_follow_up(
    follow_up: Optional[FollowUp],
    status: FollowUpStatus,
    note: Optional[str],
    now: datetime,
) -> Resolved:
    if not isinstance(follow_up, Pending):
        raise FollowUpAlreadyResolved("follow-up already recorded")
    status = FollowUpStatus(status)
    if status == FollowUpStatus.pending:
        raise ValueError("a check-in must be yes, partly or no")
    note = (note or "").strip() or None
    return Resolved(status=status, note=note, followed_up_at=now)
