"""Core conversation types shared by the widget and the guided intake flow."""

from __future__ import annotations

import itertools
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum


class Role(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


class ConversationState(str, Enum):
    """Stages of the guided intake dialogue."""

    INITIAL = "initial"
    ASK_QUALIFYING_QUESTION = "ask_qualifying_question"
    DISQUALIFIED_END = "disqualified_end"
    SHOW_DEMO = "show_demo"
    SHOW_VALUE = "show_value"
    SHOW_PROCESS = "show_process"
    SHOW_PRICE = "show_price"
    ASK_PROCEED = "ask_proceed"
    SHOW_ALTERNATE_CONTACT = "show_alternate_contact"
    COLLECT_NAME = "collect_name"
    COLLECT_PRACTICE = "collect_practice"
    COLLECT_SITE = "collect_site"
    COLLECT_EMAIL = "collect_email"
    SUBMITTING = "submitting"
    COMPLETE = "complete"

    @property
    def is_terminal(self) -> bool:
        return self in (ConversationState.DISQUALIFIED_END, ConversationState.COMPLETE)


class SubscriptionStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    PAST_DUE = "past_due"
    CANCELLED = "cancelled"


class IntakeStatus(str, Enum):
    PENDING = "pending"
    CONTACTED = "contacted"
    CONVERTED = "converted"
    CLOSED = "closed"


# Process-wide counter so message ids sort in creation order.
_sequence = itertools.count(1)


def _new_message_id() -> str:
    return f"{next(_sequence):010d}-{uuid.uuid4().hex[:12]}"


@dataclass(frozen=True)
class Message:
    """A single chat message. Immutable once created."""

    role: Role
    content: str
    id: str = field(default_factory=_new_message_id)
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))


class Transcript:
    """Append-only, ordered message history for one chat session.

    An assistant message can only follow a user message, so the last
    assistant reply is always the answer to the turn right before it.
    """

    def __init__(self) -> None:
        self._messages: list[Message] = []

    def append(self, message: Message) -> Message:
        if message.role is Role.ASSISTANT and (
            not self._messages or self._messages[-1].role is not Role.USER
        ):
            raise ValueError("An assistant message must directly follow a user message")
        self._messages.append(message)
        return message

    def add_user(self, content: str) -> Message:
        return self.append(Message(role=Role.USER, content=content))

    def add_assistant(self, content: str) -> Message:
        return self.append(Message(role=Role.ASSISTANT, content=content))

    def history(self) -> list[dict[str, str]]:
        """Return the transcript as ``[{role, content}]`` dicts for an LLM call."""
        return [{"role": m.role.value, "content": m.content} for m in self._messages]

    @property
    def messages(self) -> tuple[Message, ...]:
        return tuple(self._messages)

    @property
    def last(self) -> Message | None:
        return self._messages[-1] if self._messages else None

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self):
        return iter(self._messages)
