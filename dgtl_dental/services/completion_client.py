"""HTTP client for the hosted chat-completion endpoints.

Two modes:

* **blocking**: ``POST {message, clinicId, messages}`` and read one JSON
  body ``{"response": "..."}``.
* **streaming**: ``POST {message, messages}`` and read an event stream of
  ``data: {json}`` lines, each carrying ``choices[0].delta.content``,
  terminated by ``data: [DONE]``.

Failed calls raise :class:`CompletionError`. Nothing here retries; the
widget turns the error into a fallback message and the user may resend.
"""

from __future__ import annotations

import codecs
import json
import logging
import time
from collections.abc import Iterator, Sequence
from typing import Any

import httpx

from dgtl_dental.config import (
    COMPLETION_ENDPOINT,
    COMPLETION_TIMEOUT_SECONDS,
    HISTORY_MAX_MESSAGES,
    STREAM_COMPLETION_ENDPOINT,
)
from dgtl_dental.services.metrics import metrics

logger = logging.getLogger(__name__)

DONE_TOKEN = "[DONE]"


class CompletionError(Exception):
    """Raised when the completion endpoint fails or returns a non-2xx status."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


def trim_history(
    history: Sequence[dict[str, str]], max_messages: int = HISTORY_MAX_MESSAGES,
) -> list[dict[str, str]]:
    """Keep system messages plus the last *max_messages* conversation turns."""
    system = [m for m in history if m.get("role") == "system"]
    rest = [m for m in history if m.get("role") != "system"]
    return system + rest[-max_messages:] if max_messages > 0 else system


class SSEDecoder:
    """Incremental decoder for an event stream of chat-completion deltas.

    Bytes may arrive split anywhere, including inside a multi-byte UTF-8
    character or in the middle of a line. Only newline-terminated lines
    are parsed; the unterminated tail stays buffered until the next chunk,
    so the decoded text does not depend on where the chunks were cut.
    """

    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""
        self.done = False

    def feed(self, chunk: bytes) -> list[str]:
        """Consume *chunk* and return the text deltas it completed."""
        if self.done:
            return []
        self._buffer += self._decoder.decode(chunk)
        return self._drain()

    def close(self) -> list[str]:
        """Flush at end of stream: parse a final line that had no newline."""
        if self.done:
            return []
        self._buffer += self._decoder.decode(b"", final=True)
        if self._buffer and not self._buffer.endswith("\n"):
            self._buffer += "\n"
        deltas = self._drain()
        self.done = True
        return deltas

    def _drain(self) -> list[str]:
        deltas: list[str] = []
        while not self.done:
            newline = self._buffer.find("\n")
            if newline == -1:
                break
            line = self._buffer[:newline]
            self._buffer = self._buffer[newline + 1 :]
            delta = self._parse_line(line)
            if delta:
                deltas.append(delta)
        return deltas

    def _parse_line(self, line: str) -> str | None:
        line = line.removesuffix("\r")
        if not line.strip() or line.startswith(":"):
            return None
        if not line.startswith("data: "):
            return None

        payload = line[6:].strip()
        if payload == DONE_TOKEN:
            self.done = True
            return None

        try:
            parsed = json.loads(payload)
        except json.JSONDecodeError:
            logger.warning("Skipping malformed stream line: %.80s", payload)
            return None

        try:
            content = parsed["choices"][0]["delta"].get("content")
        except (KeyError, IndexError, TypeError, AttributeError):
            return None
        return content if isinstance(content, str) else None


def decode_stream(chunks: Iterator[bytes] | Sequence[bytes]) -> str:
    """Decode a whole event stream into its accumulated text."""
    decoder = SSEDecoder()
    parts: list[str] = []
    for chunk in chunks:
        parts.extend(decoder.feed(chunk))
        if decoder.done:
            break
    parts.extend(decoder.close())
    return "".join(parts)


class RemoteCompletionClient:
    """Talks to the blocking and streaming completion endpoints."""

    def __init__(
        self,
        endpoint: str | None = None,
        stream_endpoint: str | None = None,
        *,
        http_client: httpx.Client | None = None,
        timeout: float = COMPLETION_TIMEOUT_SECONDS,
    ):
        self._endpoint = endpoint or COMPLETION_ENDPOINT
        self._stream_endpoint = stream_endpoint or STREAM_COMPLETION_ENDPOINT
        self._client = http_client or httpx.Client(
            timeout=timeout,
            headers={"Content-Type": "application/json"},
        )

    # ── Internal helpers ─────────────────────────────────────────────

    @staticmethod
    def _check_status(response: httpx.Response, operation: str) -> None:
        status = response.status_code
        if status < 400:
            return
        if status == 429:
            logger.warning("Completion %s rate limited by upstream (429)", operation)
        elif status == 402:
            logger.warning("Completion %s refused: upstream credits exhausted (402)", operation)
        else:
            logger.warning("Completion %s failed with HTTP %d", operation, status)
        raise CompletionError(f"Completion endpoint returned {status}", status_code=status)

    @staticmethod
    def _body(message: str, history: Sequence[dict[str, str]], clinic_id: str | None) -> dict[str, Any]:
        body: dict[str, Any] = {"message": message, "messages": trim_history(history)}
        if clinic_id:
            body["clinicId"] = clinic_id
        return body

    # ── Public API ───────────────────────────────────────────────────

    def complete(
        self,
        message: str,
        history: Sequence[dict[str, str]] = (),
        clinic_id: str | None = None,
    ) -> str:
        """Send one message and return the full answer text."""
        t0 = time.perf_counter()
        try:
            response = self._client.post(
                self._endpoint, json=self._body(message, history, clinic_id),
            )
            self._check_status(response, "complete")
            data = response.json()
            answer = data.get("response") if isinstance(data, dict) else None
            if not isinstance(answer, str) or not answer:
                raise CompletionError("Completion endpoint returned no response text")
        except httpx.HTTPError as exc:
            metrics.record_failure(
                "completion", "complete",
                error_type=type(exc).__name__,
                latency_ms=(time.perf_counter() - t0) * 1000,
            )
            raise CompletionError(f"Completion request failed: {exc}") from exc
        except (CompletionError, ValueError) as exc:
            metrics.record_failure(
                "completion", "complete",
                error_type=type(exc).__name__,
                latency_ms=(time.perf_counter() - t0) * 1000,
            )
            if isinstance(exc, CompletionError):
                raise
            raise CompletionError("Completion endpoint returned invalid JSON") from exc

        metrics.record_success("completion", "complete", latency_ms=(time.perf_counter() - t0) * 1000)
        return answer

    def stream(
        self,
        message: str,
        history: Sequence[dict[str, str]] = (),
        clinic_id: str | None = None,
    ) -> Iterator[str]:
        """Yield text deltas as the endpoint produces them."""
        t0 = time.perf_counter()
        decoder = SSEDecoder()
        try:
            with self._client.stream(
                "POST", self._stream_endpoint, json=self._body(message, history, clinic_id),
            ) as response:
                self._check_status(response, "stream")
                for chunk in response.iter_bytes():
                    yield from decoder.feed(chunk)
                    if decoder.done:
                        break
                yield from decoder.close()
        except httpx.HTTPError as exc:
            metrics.record_failure(
                "completion", "stream",
                error_type=type(exc).__name__,
                latency_ms=(time.perf_counter() - t0) * 1000,
            )
            raise CompletionError(f"Streaming request failed: {exc}") from exc
        except CompletionError as exc:
            metrics.record_failure("completion", "stream", error_type=type(exc).__name__)
            raise

        metrics.record_success("completion", "stream", latency_ms=(time.perf_counter() - t0) * 1000)

    def close(self) -> None:
        self._client.close()
