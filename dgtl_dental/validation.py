"""Input validation and light normalisation helpers."""

from __future__ import annotations

import re

# Pragmatic subset of RFC 5322: one "@", a dotted domain, no spaces.
_EMAIL_RE = re.compile(
    r"^[a-zA-Z0-9.!#$%&'*+/=?^_`{|}~-]+"
    r"@[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?"
    r"(?:\.[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?)+$"
)

_SCHEME_RE = re.compile(r"^[a-zA-Z][a-zA-Z0-9+.-]*://")


def validate_email(email: str) -> str | None:
    """Return an error message if *email* looks invalid, else ``None``."""
    if not email or not email.strip():
        return "An email address is required."
    email = email.strip()
    if not _EMAIL_RE.match(email):
        return f'"{email}" does not look like a valid email address.'
    return None


def normalize_website(value: str) -> str:
    """Trim *value* and prefix a bare domain with ``https://``."""
    value = value.strip()
    if value and not _SCHEME_RE.match(value):
        value = f"https://{value}"
    return value
