"""Superadmin console: pick active practices and push widget updates to them.

Authentication is server-side only: :class:`AdminSessions` checks the
configured credentials and hands out an opaque, expiring bearer token.
"""

from __future__ import annotations

import hmac
import logging
import secrets
import threading
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass

from sqlalchemy.exc import SQLAlchemyError

from dgtl_dental.config import ADMIN_EMAIL, ADMIN_PASSWORD, ADMIN_SESSION_TTL_SECONDS
from dgtl_dental.models import SubscriptionStatus
from dgtl_dental.services.store import Practice, PracticeStore

logger = logging.getLogger(__name__)

NO_SELECTION_MESSAGE = "Please select at least one client to update."
DEPLOY_FAILED_MESSAGE = "Error pushing updates. Please try again."
NO_ACTIVE_MESSAGE = "None of the selected clients has an active subscription."


@dataclass(frozen=True)
class DeployResult:
    ok: bool
    message: str
    updated: int = 0


class AdminConsole:
    """Selection state and bulk deploy for one admin view."""

    def __init__(self, store: PracticeStore):
        self._store = store
        self.selected: set[str] = set()

    def list_active(self) -> list[Practice]:
        return self._store.list_practices(status=SubscriptionStatus.ACTIVE)

    def toggle_selection(self, clinic_id: str) -> bool:
        """Flip *clinic_id* in the selection; returns whether it is now selected."""
        if clinic_id in self.selected:
            self.selected.discard(clinic_id)
            return False
        self.selected.add(clinic_id)
        return True

    def select_all(self) -> set[str]:
        """Select every active practice, or clear the selection if all are selected."""
        active = {p.clinic_id for p in self.list_active()}
        self.selected = set() if self.selected == active else active
        return set(self.selected)

    def deploy(self, clinic_ids: Iterable[str] | None = None) -> DeployResult:
        """Touch every selected practice so its widget picks up the update.

        The whole batch is one transaction; a failure is reported once for
        the batch and leaves the selection intact for a retry.
        """
        ids = sorted(self.selected if clinic_ids is None else set(clinic_ids))
        if not ids:
            return DeployResult(ok=False, message=NO_SELECTION_MESSAGE)

        try:
            updated = self._store.touch_practices(ids, status=SubscriptionStatus.ACTIVE)
        except SQLAlchemyError:
            logger.exception("Bulk deploy to %d practices failed", len(ids))
            return DeployResult(ok=False, message=DEPLOY_FAILED_MESSAGE)
        if updated == 0:
            logger.warning("Deploy skipped: none of %s is active", ids)
            return DeployResult(ok=False, message=NO_ACTIVE_MESSAGE)

        self.selected.clear()
        logger.info("Deployed widget update to %d practice(s)", updated)
        return DeployResult(
            ok=True,
            message=f"Successfully pushed updates to {updated} client(s)!",
            updated=updated,
        )

    def stats(self) -> dict[str, int]:
        return self._store.stats()


class AdminSessions:
    """Issues and checks expiring admin bearer tokens."""

    def __init__(
        self,
        email: str = ADMIN_EMAIL,
        password: str = ADMIN_PASSWORD,
        *,
        ttl_seconds: int = ADMIN_SESSION_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._email = email
        self._password = password
        self._ttl = ttl_seconds
        self._clock = clock
        self._tokens: dict[str, float] = {}
        self._lock = threading.Lock()

    def login(self, email: str, password: str) -> str | None:
        """Return a new token for valid credentials, else ``None``."""
        if not self._email or not self._password:
            logger.warning("Admin login attempted but no admin credentials are configured")
            return None
        email_ok = hmac.compare_digest(email.strip().lower().encode(), self._email.lower().encode())
        password_ok = hmac.compare_digest(password.encode(), self._password.encode())
        if not (email_ok and password_ok):
            logger.warning("Rejected admin login for %s", email)
            return None

        token = secrets.token_urlsafe(32)
        with self._lock:
            self._purge()
            self._tokens[token] = self._clock() + self._ttl
        logger.info("Admin session started")
        return token

    def is_valid(self, token: str | None) -> bool:
        if not token:
            return False
        with self._lock:
            expires = self._tokens.get(token)
            if expires is None:
                return False
            if expires <= self._clock():
                del self._tokens[token]
                return False
            return True

    def logout(self, token: str) -> None:
        with self._lock:
            self._tokens.pop(token, None)

    def _purge(self) -> None:
        now = self._clock()
        for token in [t for t, exp in self._tokens.items() if exp <= now]:
            del self._tokens[token]
