from datetime import datetime, timezone

import pytest

from ledger.models import CoachingSession, FollowUpStatus
from ledger.services.follow_up import (
    FollowUpAlreadyResolved,
    Pending,
    Resolved,
    follow_up_of,
    resolve_follow_up,
)

NOW = datetime(2026, 10, 19, 9, 30, tzinfo=timezone.utc)


def _record(**kwargs) -> CoachingSession:
    fields = dict(
        user_id=1,
        situation="s",
        wedge_label="Meeting",
        framework_used="behavioral",
        coaching_script="c",
        commitment="Email them today",
        feedback=1,
    )
    fields.update(kwargs)
    return CoachingSession(**fields)


def test_new_session_follow_up_is_pending():
    assert follow_up_of(_record()) == Pending()


def test_resolve_pending():
    resolved = resolve_follow_up(Pending(), FollowUpStatus.partly, "  sent half of it ", NOW)
    assert resolved == Resolved(status=FollowUpStatus.partly, note="sent half of it", followed_up_at=NOW)


def test_blank_note_is_dropped():
    assert resolve_follow_up(Pending(), FollowUpStatus.no, "  ", NOW).note is None


def test_second_resolution_is_rejected():
    record = _record(follow_up_status=FollowUpStatus.yes, followed_up_at=NOW)
    assert isinstance(follow_up_of(record), Resolved)
    with pytest.raises(FollowUpAlreadyResolved):
        resolve_follow_up(follow_up_of(record), FollowUpStatus.no, None, NOW)


def test_cannot_resolve_back_to_pending():
    with pytest.raises(ValueError):
        resolve_follow_up(Pending(), FollowUpStatus.pending, None, NOW)
