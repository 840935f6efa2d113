"""Centralized configuration for the DGTL Dental service.

Secret resolution order (per variable):
  1. Environment variable / ``.env`` file  (local dev)
  2. AWS SSM Parameter Store SecureString  (when ``AWS_EXECUTION_ENV`` is set)

The SSM paths follow the convention ``/dgtl-dental/<VARIABLE_NAME>``.
"""

from __future__ import annotations

import logging
import os

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

# ── Feature flag: running on AWS? ────────────────────────────────────
_ON_AWS = bool(os.getenv("AWS_EXECUTION_ENV"))


# ── Secret resolution ────────────────────────────────────────────────

def _get_ssm_parameter(name: str) -> str | None:
    """Fetch a SecureString from SSM Parameter Store.

    Returns ``None`` when the parameter is missing or boto3 cannot reach
    SSM, so optional settings fall back to their defaults.
    """
    try:
        import boto3  # noqa: PLC0415

        ssm = boto3.client("ssm")
        resp = ssm.get_parameter(Name=f"/dgtl-dental/{name}", WithDecryption=True)
        return resp["Parameter"]["Value"]
    except Exception:
        logger.debug("SSM lookup for %s failed (expected locally)", name)
        return None


def _lookup(name: str) -> str | None:
    value = os.getenv(name)
    if value and not value.startswith("your_"):
        return value
    if _ON_AWS:
        return _get_ssm_parameter(name)
    return None


def _require_env(name: str) -> str:
    """Return a config value from env-var or SSM, or raise a clear error."""
    value = _lookup(name)
    if value:
        return value
    raise OSError(
        f"Missing required configuration: {name}. "
        f"Set it in .env (local) or SSM Parameter Store /dgtl-dental/{name} (AWS)."
    )


def _optional_secret(name: str, default: str = "") -> str:
    return _lookup(name) or default


# ── LLM ─────────────────────────────────────────────────────────────
ANTHROPIC_API_KEY: str = _require_env("ANTHROPIC_API_KEY")
MODEL_NAME: str = os.getenv("MODEL_NAME", "claude-sonnet-4-5")
FAST_MODEL_NAME: str = os.getenv("FAST_MODEL_NAME", "claude-haiku-4-5")
HISTORY_MAX_MESSAGES: int = int(os.getenv("HISTORY_MAX_MESSAGES", "8"))
MAX_CHAT_SESSIONS: int = int(os.getenv("MAX_CHAT_SESSIONS", "1000"))

# ── Remote completion endpoints (used by the widget client / CLI) ───
PUBLIC_BASE_URL: str = os.getenv("PUBLIC_BASE_URL", "http://localhost:8000").rstrip("/")
COMPLETION_ENDPOINT: str = os.getenv("COMPLETION_ENDPOINT", f"{PUBLIC_BASE_URL}/api/chat")
STREAM_COMPLETION_ENDPOINT: str = os.getenv(
    "STREAM_COMPLETION_ENDPOINT", f"{PUBLIC_BASE_URL}/api/demo-chat",
)
COMPLETION_TIMEOUT_SECONDS: float = float(os.getenv("COMPLETION_TIMEOUT_SECONDS", "30"))
PRACTICE_PHONE_FALLBACK: str = os.getenv("PRACTICE_PHONE_FALLBACK", "the office")

# ── Persistence ─────────────────────────────────────────────────────
DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./dgtl_dental.db")

# ── Billing (Stripe) ────────────────────────────────────────────────
STRIPE_SECRET_KEY: str = _optional_secret("STRIPE_SECRET_KEY")
SUBSCRIPTION_PRICE_CENTS: int = int(os.getenv("SUBSCRIPTION_PRICE_CENTS", "9900"))
INSTALL_FEE_CENTS: int = int(os.getenv("INSTALL_FEE_CENTS", "10000"))

# ── Transactional e-mail (Resend) ───────────────────────────────────
RESEND_API_KEY: str = _optional_secret("RESEND_API_KEY")
RESEND_BASE_URL: str = "https://api.resend.com"
MAIL_FROM: str = os.getenv("MAIL_FROM", "DGTL Dental <noreply@dgtldental.com>")
CONTACT_INBOX: str = os.getenv("CONTACT_INBOX", "hello@dgtldental.com")

# ── Superadmin ──────────────────────────────────────────────────────
ADMIN_EMAIL: str = _optional_secret("ADMIN_EMAIL")
ADMIN_PASSWORD: str = _optional_secret("ADMIN_PASSWORD")
ADMIN_SESSION_TTL_SECONDS: int = int(os.getenv("ADMIN_SESSION_TTL_SECONDS", "28800"))

# ── Server ──────────────────────────────────────────────────────────
SERVER_HOST: str = os.getenv("SERVER_HOST", "0.0.0.0")
SERVER_PORT: int = int(os.getenv("SERVER_PORT", "8000"))
CORS_ORIGINS: list[str] = os.getenv(
    "CORS_ORIGINS",
    "http://localhost:3000,http://localhost:5173",
).split(",")
