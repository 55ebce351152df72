"""
Principles, profile and dashboard read endpoints.
"""

from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ledger.api.auth import get_current_user
from ledger.api.sessions import session_read
from ledger.db import get_db
from ledger.models import FollowUpStatus, User
from ledger.schema.response import DashboardRead, PrincipleRead, ProfileRead
from ledger.services.principle_service import list_user_principles
from ledger.services.session_service import list_user_sessions


router = APIRouter(tags=["principles"])


@router.get("/principles", response_model=List[PrincipleRead])
async def list_principles(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await list_user_principles(db, user.id)


@router.get("/profile", response_model=ProfileRead)
async def get_profile(user: User = Depends(get_current_user)):
    return user


@router.get("/dashboard", response_model=DashboardRead)
async def dashboard(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """
    Everything the home screen shows. needs_onboarding tells the client to
    send the user through onboarding before anything else.
    """
    principles = await list_user_principles(db, user.id)
    sessions = await list_user_sessions(db, user.id)
    pending = [
        s for s in sessions
        if s.follow_up_status == FollowUpStatus.pending and s.commitment
    ]
    return DashboardRead(
        profile=ProfileRead.model_validate(user),
        principles=[PrincipleRead.model_validate(p) for p in principles],
        sessions=[session_read(s) for s in sessions],
        pending_follow_ups=[session_read(s) for s in pending],
        needs_onboarding=not user.onboarding_complete and not principles,
    )
