"""
Response schemas for the Ledger API.
"""

from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel

from ledger.models import FollowUpStatus


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user_id: int


class ProfileRead(BaseModel):
    id: int
    email: str
    display_name: Optional[str]
    onboarding_complete: bool

    class Config:
        from_attributes = True


class PrincipleRead(BaseModel):
    id: int
    text: str
    source_regret: str
    better_version: str
    created_at: datetime

    class Config:
        from_attributes = True


class CoachingSessionRead(BaseModel):
    id: int
    principle_id: Optional[int]
    situation: str
    wedge_label: str
    framework_used: str
    framework_label: Optional[str] = None
    coaching_script: str
    commitment: str
    feedback: int
    follow_up_status: Optional[FollowUpStatus]
    follow_up_note: Optional[str]
    followed_up_at: Optional[datetime]
    created_at: datetime

    class Config:
        from_attributes = True


class MessageRead(BaseModel):
    role: str
    text: str


class PrincipleRefRead(BaseModel):
    id: int
    text: str


class FrameworkRead(BaseModel):
    id: str
    label: str


class SessionStateRead(BaseModel):
    """Snapshot of the in-progress coaching session."""
    phase: str
    framework: FrameworkRead
    principle: Optional[PrincipleRefRead] = None
    situation: Optional[str] = None
    wedge: Optional[str] = None
    messages: List[MessageRead] = []
    options: List[str] = []
    commitment: Optional[str] = None
    feedback: Optional[int] = None
    session_id: Optional[int] = None
    crisis: bool = False
    crisis_message: Optional[str] = None
    streaming: bool = False


class OnboardingStateRead(BaseModel):
    phase: str
    messages: List[MessageRead] = []
    crisis: bool = False
    crisis_message: Optional[str] = None
    unsaved_principle: Optional[str] = None
    principle_id: Optional[int] = None
    principle_text: Optional[str] = None
    streaming: bool = False


class DashboardRead(BaseModel):
    profile: ProfileRead
    principles: List[PrincipleRead]
    sessions: List[CoachingSessionRead]
    pending_follow_ups: List[CoachingSessionRead]
    needs_onboarding: bool
