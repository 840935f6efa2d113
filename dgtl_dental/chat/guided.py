"""Guided intake dialogue for the landing page.

A scripted walk from "are you a dental practice?" through a live demo
question, the pitch and pricing, to capturing the practice's contact
details::

    initial → ask_qualifying_question ─ No ─→ disqualified_end
                      │ yes
                      ▼
    show_demo → show_value → show_process → show_price → ask_proceed
                                                          │        │
                                          "I have a question"      │ yes
                                                          ▼        │
                                         show_alternate_contact ───┤
                                                                   ▼
          collect_name → collect_practice → collect_site → collect_email
                                                                   │
                                                submitting → complete

Entering a state renders its scripted lines (each after a short typing
pause), then either moves straight on to the next state or waits for a
button choice or one free-text field. ``disqualified_end`` and
``complete`` are terminal and ignore any further input.
"""

from __future__ import annotations

import logging
import re
import time
from collections.abc import Callable
from dataclasses import asdict, dataclass
from typing import Any

from dgtl_dental.chat.session import WidgetSession
from dgtl_dental.models import ConversationState, Message, Role
from dgtl_dental.validation import normalize_website

logger = logging.getLogger(__name__)

S = ConversationState

CONTACT_EMAIL = "hello@dgtldental.com"
SUBMIT_ERROR_NOTICE = "Something went wrong. Please try again."
DEMO_UNAVAILABLE_REPLY = (
    "I'm having trouble connecting right now. But imagine a helpful response here! 😊"
)

SCRIPT: dict[ConversationState, tuple[str, ...]] = {
    S.INITIAL: ("Hi — welcome. Quick question so I can point you in the right direction.",),
    S.ASK_QUALIFYING_QUESTION: ("Do you work in the dental industry?",),
    S.DISQUALIFIED_END: (
        "Thanks for stopping by. Our service is designed specifically for dental practices. "
        "If you know a dentist who might benefit, feel free to share this page with them.",
    ),
    S.SHOW_DEMO: (
        "Great. We've answered over 50,000 real dental questions using a dental-trained AI assistant.",
        "Try it — ask any dental question:",
    ),
    S.SHOW_VALUE: (
        "We build and install a custom dental assistant on your website that answers patient "
        "questions 24/7 using safe, dental-specific language.",
        "There's no software to learn and no setup required on your end.",
    ),
    S.SHOW_PROCESS: (
        "Here's how it works:\n"
        "1. You tell us about your practice\n"
        "2. We build your assistant\n"
        "3. Your web team adds one line of code",
        "You're live within 24 hours.",
    ),
    S.SHOW_PRICE: (
        "$99/month · No setup fee · Cancel anytime",
        "The assistant never diagnoses, never gives treatment decisions, and always "
        "encourages patients to contact your office.",
    ),
    S.ASK_PROCEED: ("Would you like us to set this up for your website?",),
    S.SHOW_ALTERNATE_CONTACT: (
        f"No problem. Email us at {CONTACT_EMAIL} and we'll get back to you shortly.",
        "Or if you're ready to get started, just say so.",
    ),
    S.COLLECT_NAME: ("Perfect. Tell us a bit about your practice. What's your name?",),
    S.COLLECT_PRACTICE: ("And what's the name of your practice?",),
    S.COLLECT_SITE: ("What's your practice website?",),
    S.COLLECT_EMAIL: ("Last one: what email should we reach you at?",),
    S.COMPLETE: ("Thanks — we'll review your site and follow up shortly.",),
}

AUTO_ADVANCE: dict[ConversationState, ConversationState] = {
    S.INITIAL: S.ASK_QUALIFYING_QUESTION,
    S.SHOW_VALUE: S.SHOW_PROCESS,
    S.SHOW_PROCESS: S.SHOW_PRICE,
    S.SHOW_PRICE: S.ASK_PROCEED,
}

CHOICES: dict[ConversationState, dict[str, ConversationState]] = {
    S.ASK_QUALIFYING_QUESTION: {
        "Dentist / Practice Owner": S.SHOW_DEMO,
        "I work in dental": S.SHOW_DEMO,
        "No": S.DISQUALIFIED_END,
    },
    S.SHOW_DEMO: {"Skip": S.SHOW_VALUE},
    S.ASK_PROCEED: {
        "Yes, let's do it": S.COLLECT_NAME,
        "I have a question": S.SHOW_ALTERNATE_CONTACT,
    },
    S.SHOW_ALTERNATE_CONTACT: {"Request setup": S.COLLECT_NAME},
}

# state → (draft field, next state)
FIELDS: dict[ConversationState, tuple[str, ConversationState]] = {
    S.COLLECT_NAME: ("contact_name", S.COLLECT_PRACTICE),
    S.COLLECT_PRACTICE: ("practice_name", S.COLLECT_SITE),
    S.COLLECT_SITE: ("website_url", S.COLLECT_EMAIL),
    S.COLLECT_EMAIL: ("email", S.SUBMITTING),
}

_AFFIRMATIVE_RE = re.compile(
    r"^(yes|yeah|yep|yup|sure|ok|okay|ready|let'?s|sounds good|please|i'?m ready)\b",
    re.IGNORECASE,
)


def is_affirmative(text: str) -> bool:
    return bool(_AFFIRMATIVE_RE.match(text.strip()))


@dataclass
class IntakeDraft:
    contact_name: str = ""
    practice_name: str = ""
    website_url: str = ""
    email: str = ""

    def as_record(self) -> dict[str, str]:
        return asdict(self)


class GuidedIntake:
    """State machine behind the guided landing-page chat."""

    def __init__(
        self,
        create_record: Callable[[IntakeDraft], Any],
        *,
        demo: WidgetSession | None = None,
        typing_delay: float = 0.6,
        sleep: Callable[[float], None] = time.sleep,
        on_message: Callable[[Message], None] | None = None,
    ):
        self._create_record = create_record
        self._demo = demo
        self._typing_delay = typing_delay
        self._sleep = sleep
        self._on_message = on_message
        self._initialized = False

        self.state = S.INITIAL
        self.messages: list[Message] = []
        self.draft = IntakeDraft()
        self.notifications: list[str] = []

    # ── Public API ───────────────────────────────────────────────────

    def start(self) -> list[Message]:
        """Render the greeting. Calling it again does nothing."""
        if self._initialized:
            return []
        self._initialized = True
        return self._enter(S.INITIAL)

    def expected_input(self) -> tuple[str, Any] | None:
        """What the current state is waiting for.

        ``("choice", [labels])``, ``("text", field_name)``, or ``None`` for
        terminal and in-flight states.
        """
        if self.state.is_terminal or self.state is S.SUBMITTING:
            return None
        if self.state in FIELDS:
            return ("text", FIELDS[self.state][0])
        if self.state is S.SHOW_DEMO:
            return ("text", "question")
        if self.state in CHOICES:
            return ("choice", list(CHOICES[self.state]))
        return None

    def choose(self, label: str) -> list[Message]:
        """Handle a button press."""
        if self.state.is_terminal:
            return []
        options = CHOICES.get(self.state, {})
        if label not in options:
            raise ValueError(f"{label!r} is not an option in state {self.state.value}")
        self._record(Role.USER, label)
        return self._enter(options[label])

    def submit_text(self, text: str) -> list[Message]:
        """Handle a free-text submission for the current state."""
        if self.state.is_terminal or self.state is S.SUBMITTING:
            return []
        value = text.strip() if isinstance(text, str) else ""
        if not value:
            return []

        if self.state is S.SHOW_DEMO:
            return self._answer_demo(value)

        if self.state is S.SHOW_ALTERNATE_CONTACT:
            self._record(Role.USER, value)
            if is_affirmative(value):
                return self._enter(S.COLLECT_NAME)
            return []

        if self.state not in FIELDS:
            logger.debug("Ignoring free text in state %s", self.state.value)
            return []

        field_name, next_state = FIELDS[self.state]
        if field_name == "website_url":
            value = normalize_website(value)
        setattr(self.draft, field_name, value)
        self._record(Role.USER, value)

        if next_state is S.SUBMITTING:
            return self._submit()
        return self._enter(next_state)

    # ── Internal ─────────────────────────────────────────────────────

    def _record(self, role: Role, content: str) -> Message:
        message = Message(role=role, content=content)
        self.messages.append(message)
        if self._on_message is not None:
            self._on_message(message)
        return message

    def _say(self, content: str) -> Message:
        if self._typing_delay > 0:
            self._sleep(self._typing_delay)
        return self._record(Role.ASSISTANT, content)

    def _enter(self, state: ConversationState) -> list[Message]:
        rendered: list[Message] = []
        while True:
            logger.debug("Guided intake: entering %s", state.value)
            self.state = state
            rendered.extend(self._say(line) for line in SCRIPT.get(state, ()))
            if state not in AUTO_ADVANCE:
                return rendered
            state = AUTO_ADVANCE[state]

    def _answer_demo(self, question: str) -> list[Message]:
        self._record(Role.USER, question)
        reply = None
        if self._demo is not None:
            answer = self._demo.submit(question)
            reply = answer.content if answer is not None else None
        rendered = [self._say(reply or DEMO_UNAVAILABLE_REPLY)]
        return rendered + self._enter(S.SHOW_VALUE)

    def _submit(self) -> list[Message]:
        self.state = S.SUBMITTING
        try:
            self._create_record(self.draft)
        except Exception:
            logger.exception("Could not save setup request for %s", self.draft.email)
            self.state = S.COLLECT_EMAIL
            self.notifications.append(SUBMIT_ERROR_NOTICE)
            return []
        logger.info("Setup request saved for %s", self.draft.practice_name)
        return self._enter(S.COMPLETE)
