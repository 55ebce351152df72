"""
Request schemas for the Ledger API.
"""

from typing import Literal, Optional
from pydantic import BaseModel, EmailStr, Field

from ledger.services.frameworks import WedgeLabel


# ==========================================
# AUTHENTICATION
# ==========================================

class RegisterRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=6)
    display_name: Optional[str] = None


# ==========================================
# CONVERSATION TURNS
# ==========================================

class MessageRequest(BaseModel):
    message: str


# ==========================================
# COACHING SESSION
# ==========================================

class SelectPrincipleRequest(BaseModel):
    principle_id: int


class SituationRequest(BaseModel):
    situation: str


class WedgeRequest(BaseModel):
    wedge: WedgeLabel


class CommitmentRequest(BaseModel):
    option: int = Field(ge=0, description="Index of the chosen commitment option")


class FeedbackRequest(BaseModel):
    value: Literal[0, 1]


class FollowUpRequest(BaseModel):
    status: Literal["yes", "partly", "no"]
    note: Optional[str] = None
