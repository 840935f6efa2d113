"""One chat widget session: transcript plus the "assistant is typing" flag.

The demo widget, the embedded practice widget and the staging widget all
run through :class:`WidgetSession`; what differs is the
:class:`ChatBackend` they are given.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator, Sequence
from typing import Protocol

from dgtl_dental.chat.templates import ResponseResolver
from dgtl_dental.models import Message, Transcript
from dgtl_dental.services.completion_client import CompletionError, RemoteCompletionClient

logger = logging.getLogger(__name__)

DEFAULT_FALLBACK_PHONE = "the office"


def fallback_message(phone: str = DEFAULT_FALLBACK_PHONE) -> str:
    return (
        "I'm sorry, I'm having trouble responding right now. "
        f"Please try again in a moment or call us directly at {phone}."
    )


class ChatBackend(Protocol):
    """What a widget needs: templates, a remote model, and a chat log."""

    def resolve(self, text: str) -> str | None: ...

    def complete(self, text: str, history: Sequence[dict[str, str]]) -> str: ...

    def stream(self, text: str, history: Sequence[dict[str, str]]) -> Iterator[str]: ...

    def persist(self, text: str, response: str) -> None: ...


class RemoteChatBackend:
    """Templates first, then the remote completion endpoint."""

    def __init__(
        self,
        resolver: ResponseResolver,
        client: RemoteCompletionClient,
        *,
        clinic_id: str | None = None,
        log_chat: Callable[[str, str, str], None] | None = None,
    ):
        self._resolver = resolver
        self._client = client
        self._clinic_id = clinic_id
        self._log_chat = log_chat

    def resolve(self, text: str) -> str | None:
        return self._resolver.resolve(text)

    def complete(self, text: str, history: Sequence[dict[str, str]]) -> str:
        return self._client.complete(text, history, clinic_id=self._clinic_id)

    def stream(self, text: str, history: Sequence[dict[str, str]]) -> Iterator[str]:
        return self._client.stream(text, history, clinic_id=self._clinic_id)

    def persist(self, text: str, response: str) -> None:
        if self._log_chat is not None and self._clinic_id:
            self._log_chat(self._clinic_id, text, response)


class WidgetSession:
    """Runs chat turns strictly one at a time against a backend."""

    def __init__(
        self,
        backend: ChatBackend,
        *,
        stream: bool = False,
        fallback_phone: str = DEFAULT_FALLBACK_PHONE,
    ):
        self.backend = backend
        self.stream = stream
        self.fallback_phone = fallback_phone
        self.transcript = Transcript()
        self.composing = False

    def submit(
        self, text: str, on_delta: Callable[[str], None] | None = None,
    ) -> Message | None:
        """Run one turn and return the assistant message.

        Returns ``None`` without touching the transcript when *text* is
        blank or a previous turn is still in flight.
        """
        if not isinstance(text, str) or not text.strip():
            return None
        if self.composing:
            logger.debug("Ignoring submit while a reply is being composed")
            return None

        text = text.strip()
        history = self.transcript.history()
        self.transcript.add_user(text)
        self.composing = True
        try:
            reply = self._answer(text, history, on_delta)
            message = self.transcript.add_assistant(reply)
        finally:
            self.composing = False
        return message

    def _answer(
        self,
        text: str,
        history: list[dict[str, str]],
        on_delta: Callable[[str], None] | None,
    ) -> str:
        templated = self.backend.resolve(text)
        if templated is not None:
            return templated

        # history holds the earlier turns only; text travels separately
        try:
            if self.stream:
                parts: list[str] = []
                for delta in self.backend.stream(text, history):
                    parts.append(delta)
                    if on_delta is not None:
                        on_delta("".join(parts))
                reply = "".join(parts)
                if not reply:
                    raise CompletionError("Stream ended without any content")
            else:
                reply = self.backend.complete(text, history)
        except CompletionError:
            logger.warning("Remote completion failed; using fallback reply", exc_info=True)
            return fallback_message(self.fallback_phone)

        self._persist(text, reply)
        return reply

    def _persist(self, text: str, reply: str) -> None:
        try:
            self.backend.persist(text, reply)
        except Exception:
            logger.exception("Could not log chat exchange")
