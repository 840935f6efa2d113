"""Pydantic schemas for the FastAPI endpoints.

The browser sends and receives camelCase keys (``clinicId``); the Python
side uses snake_case. Either spelling is accepted on input.
"""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from dgtl_dental.models import SubscriptionStatus
from dgtl_dental.signup import AccountInfo, PracticeDetails


class WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ── Chat ─────────────────────────────────────────────────────────────


class HistoryItem(WireModel):
    role: Literal["user", "assistant", "system"]
    content: str


class ChatRequest(WireModel):
    """Incoming message from an embedded practice widget."""

    message: str = Field(..., min_length=1, max_length=2000, description="The patient's message")
    clinic_id: str = Field(..., min_length=1, max_length=100)
    session_id: str | None = Field(
        None,
        max_length=100,
        description="Widget session identifier for conversation continuity",
    )


class ChatResponse(WireModel):
    response: str = Field(..., description="The assistant's reply")


class DemoChatRequest(WireModel):
    message: str = Field(..., min_length=1, max_length=2000)
    messages: list[HistoryItem] = Field(default_factory=list)


class HealthResponse(WireModel):
    status: str = "ok"
    service: str = "dgtl-dental"


# ── Practices ────────────────────────────────────────────────────────


class EmbedResponse(WireModel):
    clinic_id: str
    snippet: str


class PracticeSummary(WireModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

    clinic_id: str
    name: str
    email: str | None = None
    phone: str
    subscription_status: SubscriptionStatus
    version: int
    created_at: datetime | None = None
    updated_at: datetime | None = None


class QAPairIn(WireModel):
    question: str = Field(..., min_length=1, max_length=1000)
    answer: str = Field(..., min_length=1, max_length=4000)


class QAPairOut(WireModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

    id: int
    question: str
    answer: str


# ── Intake / signup ──────────────────────────────────────────────────


class SetupRequestIn(WireModel):
    practice_name: str = Field(..., min_length=1, max_length=200)
    website_url: str = Field("", max_length=1024)
    contact_name: str = Field(..., min_length=1, max_length=200)
    email: str = Field(..., min_length=1, max_length=320)


class SetupRequestOut(WireModel):
    id: int
    status: str


class SignupRequest(WireModel):
    account_info: AccountInfo
    practice_details: PracticeDetails


class SignupResponse(WireModel):
    url: str
    clinic_id: str


class CheckoutRequest(WireModel):
    clinic_id: str = Field(..., min_length=1, max_length=100)
    email: str
    practice_name: str
    need_install_help: bool = False


class CheckoutResponse(WireModel):
    url: str
    session_id: str


# ── Mail ─────────────────────────────────────────────────────────────


class ContactRequest(WireModel):
    email: str = Field(..., max_length=320)
    question: str = Field(..., max_length=5000)


class ProspectRequest(WireModel):
    name: str = Field(..., max_length=200)
    practice: str = Field(..., max_length=200)
    contact_preference: Literal["phone", "email"]
    contact_value: str = Field(..., max_length=320)


class SuccessResponse(WireModel):
    success: bool = True


# ── Admin ────────────────────────────────────────────────────────────


class AdminLoginRequest(WireModel):
    email: str
    password: str


class AdminLoginResponse(WireModel):
    token: str


class DeployRequest(WireModel):
    clinic_ids: list[str] = Field(default_factory=list)


class DeployResponse(WireModel):
    ok: bool
    message: str
    updated: int = 0


class StatsResponse(WireModel):
    total_clinics: int
    active_clinics: int
    total_messages: int
    today_messages: int


class ChatLogOut(WireModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

    id: int
    clinic_id: str
    message_content: str
    response_content: str
    created_at: datetime | None = None
