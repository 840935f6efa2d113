"""Transactional e-mail through the Resend HTTP API.

Two notifications go to the sales inbox: the landing-page contact form and
the "call me back" prospect form. User-supplied text is HTML-escaped
before it is placed in the message body.

Resend docs: https://resend.com/docs/api-reference/emails/send-email
"""

from __future__ import annotations

import html
import logging
import time
from typing import Any

import httpx

from dgtl_dental.config import CONTACT_INBOX, MAIL_FROM, RESEND_API_KEY, RESEND_BASE_URL
from dgtl_dental.services.metrics import metrics
from dgtl_dental.validation import validate_email

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT_SECONDS = 10.0

_WRAPPER = (
    '<div style="font-family: -apple-system, BlinkMacSystemFont, \'Segoe UI\', Roboto, '
    'sans-serif; max-width: 500px; margin: 0 auto; padding: 32px 24px; color: #323c5a;">'
    '<h2 style="font-size: 20px; border-bottom: 2px solid #323c5a; padding-bottom: 12px;">'
    "{title}</h2>{body}"
    '<p style="color: #6b7280; font-size: 13px; margin-top: 32px;">{footer}</p></div>'
)


class MailerError(Exception):
    """Raised when Resend rejects a message or cannot be reached."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


def _row(label: str, value_html: str) -> str:
    return (
        '<div style="margin-bottom: 16px;">'
        f'<span style="font-weight: 600; display: inline-block; width: 80px;">{label}</span>'
        f"{value_html}</div>"
    )


def contact_html(email: str, question: str) -> str:
    safe_email = html.escape(email)
    safe_question = html.escape(question).replace("\n", "<br />")
    body = _row("From", f'<a href="mailto:{safe_email}">{safe_email}</a>') + (
        '<div style="background: #f8f9fa; border-radius: 8px; padding: 16px;">'
        f"<p style=\"margin: 0;\">{safe_question}</p></div>"
    )
    return _WRAPPER.format(title="Contact Form", body=body, footer="Via DGTL Dental contact form")


def prospect_html(name: str, practice: str, contact_preference: str, contact_value: str) -> str:
    scheme = "tel" if contact_preference == "phone" else "mailto"
    safe_value = html.escape(contact_value)
    body = "".join(
        [
            _row("Name", f"<span>{html.escape(name)}</span>"),
            _row("Practice", f"<span>{html.escape(practice)}</span>"),
            _row("Prefers", f"<span>{'Phone' if scheme == 'tel' else 'Email'}</span>"),
            _row("Contact", f'<a href="{scheme}:{safe_value}">{safe_value}</a>'),
        ]
    )
    return _WRAPPER.format(title="New Prospect", body=body, footer="Via DGTL Dental landing page")


class Mailer:
    """Sends notification e-mails to the sales inbox."""

    def __init__(
        self,
        api_key: str | None = None,
        *,
        inbox: str = CONTACT_INBOX,
        sender: str = MAIL_FROM,
        http_client: httpx.Client | None = None,
    ):
        self._api_key = api_key if api_key is not None else RESEND_API_KEY
        self._inbox = inbox
        self._sender = sender
        self._client = http_client or httpx.Client(
            base_url=RESEND_BASE_URL,
            headers={
                "Authorization": f"Bearer {self._api_key}",
                "Content-Type": "application/json",
            },
            timeout=REQUEST_TIMEOUT_SECONDS,
        )

    def _send(self, payload: dict[str, Any], operation: str) -> str:
        """POST one message; returns the Resend message id.

        A single attempt: after a timeout Resend may already have accepted
        the message, so resubmitting is left to the user.
        """
        if not self._api_key:
            raise MailerError("E-mail delivery is not configured")

        t0 = time.perf_counter()
        try:
            response = self._client.post("/emails", json=payload)
        except httpx.HTTPError as exc:
            metrics.record_failure(
                "resend", operation,
                error_type=type(exc).__name__,
                latency_ms=(time.perf_counter() - t0) * 1000,
            )
            logger.warning("Resend %s failed (%s)", operation, type(exc).__name__)
            raise MailerError(f"Resend request failed: {exc}") from exc

        latency_ms = (time.perf_counter() - t0) * 1000
        status = response.status_code
        if status >= 400:
            metrics.record_failure("resend", operation, error_type=f"HTTP{status}", latency_ms=latency_ms)
            logger.warning("Resend %s returned HTTP %d", operation, status)
            raise MailerError(f"Resend rejected the message ({status}): {response.text}", status_code=status)

        try:
            data = response.json()
        except ValueError as exc:
            metrics.record_failure("resend", operation, error_type="InvalidJSON", latency_ms=latency_ms)
            raise MailerError("Resend returned an unreadable response", status_code=status) from exc

        metrics.record_success("resend", operation, latency_ms=latency_ms)
        return data.get("id", "") if isinstance(data, dict) else ""

    # ── Public API ───────────────────────────────────────────────────

    def send_contact(self, email: str, question: str) -> str:
        """Relay a contact-form question; replies go straight to the sender."""
        email = (email or "").strip()
        question = (question or "").strip()
        if not email or not question:
            raise ValueError("Email and question are required")
        if validate_email(email):
            raise ValueError("Invalid email address")

        logger.info("Sending contact form e-mail from %s", email)
        return self._send(
            {
                "from": self._sender,
                "to": [self._inbox],
                "subject": f"Contact Form: {email}",
                "reply_to": email,
                "html": contact_html(email, question),
            },
            "send_contact",
        )

    def send_prospect(
        self, name: str, practice: str, contact_preference: str, contact_value: str,
    ) -> str:
        """Notify sales about a prospect who asked to be contacted."""
        fields = [(v or "").strip() for v in (name, practice, contact_preference, contact_value)]
        if not all(fields):
            raise ValueError("All fields are required")
        name, practice, contact_preference, contact_value = fields
        if contact_preference not in ("phone", "email"):
            raise ValueError("Contact preference must be 'phone' or 'email'")

        logger.info("Sending prospect notification for %s", practice)
        return self._send(
            {
                "from": self._sender,
                "to": [self._inbox],
                "subject": f"New Prospect: {practice}",
                "html": prospect_html(name, practice, contact_preference, contact_value),
            },
            "send_prospect",
        )

    def close(self) -> None:
        self._client.close()
