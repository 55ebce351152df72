from datetime import datetime, timezone
from enum import Enum
from typing import Optional
from sqlalchemy import DateTime
from sqlmodel import Field, SQLModel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class FollowUpStatus(str, Enum):
    pending = "pending"
    yes = "yes"
    partly = "partly"
    no = "no"


class User(SQLModel, table=True):
    """Account plus profile (display name, onboarding flag)."""
    __tablename__ = "users"

    id: Optional[int] = Field(default=None, primary_key=True)
    email: str = Field(unique=True, index=True)
    hashed_password: str
    display_name: Optional[str] = None
    onboarding_complete: bool = False
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))


class Principle(SQLModel, table=True):
    __tablename__ = "principles"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="users.id", index=True)
    text: str
    source_regret: str = ""
    better_version: str = ""
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))


class CoachingSession(SQLModel, table=True):
    __tablename__ = "coaching_sessions"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="users.id", index=True)
    principle_id: Optional[int] = Field(default=None, foreign_key="principles.id")
    situation: str
    wedge_label: str
    framework_used: str
    coaching_script: str
    commitment: str
    feedback: int
    follow_up_status: Optional[FollowUpStatus] = FollowUpStatus.pending
    follow_up_note: Optional[str] = None
    followed_up_at: Optional[datetime] = Field(default=None, sa_type=DateTime(timezone=True))
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))
