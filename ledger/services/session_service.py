from typing import List, Optional

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from ledger.models import CoachingSession, FollowUpStatus, utcnow
from ledger.services.follow_up import FollowUpAlreadyResolved, follow_up_of, resolve_follow_up
from ledger.services.session_machine import Feedback, coaching_script


async def save_coaching_session(
    db: AsyncSession,
    user_id: int,
    state: Feedback,
    feedback: int,
) -> CoachingSession:
    """Single write at the end of a session; follow-up starts out pending."""
    record = CoachingSession(
        user_id=user_id,
        principle_id=state.principle.id,
        situation=state.situation,
        wedge_label=state.wedge.value,
        framework_used=state.framework.id,
        coaching_script=coaching_script(state),
        commitment=state.commitment,
        feedback=feedback,
        follow_up_status=FollowUpStatus.pending,
    )
    db.add(record)
    await db.commit()
    await db.refresh(record)
    return record


async def list_user_sessions(db: AsyncSession, user_id: int) -> List[CoachingSession]:
    res = await db.execute(
        select(CoachingSession)
        .where(CoachingSession.user_id == user_id)
        .order_by(CoachingSession.created_at.desc(), CoachingSession.id.desc())
    )
    return list(res.scalars().all())


async def get_owned_session(db: AsyncSession, user_id: int, session_id: int) -> Optional[CoachingSession]:
    record = await db.get(CoachingSession, session_id)
    if record is None or record.user_id != user_id:
        return None
    return record


async def record_follow_up(
    db: AsyncSession,
    record: CoachingSession,
    status: FollowUpStatus,
    note: Optional[str],
) -> CoachingSession:
    """
    One-shot check-in, first write wins. The update only matches a row that
    is still pending, so a concurrent second check-in finds nothing to update.
    """
    resolved = resolve_follow_up(follow_up_of(record), status, note, utcnow())

    res = await db.execute(
        update(CoachingSession)
        .where(CoachingSession.id == record.id)
        .where(CoachingSession.user_id == record.user_id)
        .where(CoachingSession.follow_up_status == FollowUpStatus.pending)
        .values(
            follow_up_status=resolved.status,
            follow_up_note=resolved.note,
            followed_up_at=resolved.followed_up_at,
        )
    )
    if res.rowcount == 0:
        await db.rollback()
        raise FollowUpAlreadyResolved("follow-up already recorded")

    await db.commit()
    await db.refresh(record)
    return record
