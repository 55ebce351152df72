from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from ledger.models import Principle, User


async def list_user_principles(db: AsyncSession, user_id: int) -> List[Principle]:
    res = await db.execute(
        select(Principle)
        .where(Principle.user_id == user_id)
        .order_by(Principle.created_at.desc(), Principle.id.desc())
    )
    return list(res.scalars().all())


async def get_owned_principle(db: AsyncSession, user_id: int, principle_id: int) -> Optional[Principle]:
    principle = await db.get(Principle, principle_id)
    if principle is None or principle.user_id != user_id:
        return None
    return principle


async def save_confirmed_principle(
    db: AsyncSession,
    user_id: int,
    text: str,
    source_regret: str,
    better_version: str,
) -> Principle:
    """Store the principle and flag the profile's onboarding as complete, in one commit."""
    principle = Principle(
        user_id=user_id,
        text=text,
        source_regret=source_regret,
        better_version=better_version,
    )
    db.add(principle)

    user = await db.get(User, user_id)
    if user is not None:
        user.onboarding_complete = True
        db.add(user)

    await db.commit()
    await db.refresh(principle)
    return principle
