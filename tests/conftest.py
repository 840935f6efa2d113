"""Shared test fixtures for the DGTL Dental test suite."""

from __future__ import annotations

import os
from unittest.mock import MagicMock

import pytest


def pytest_configure(config):
    """Set test environment variables BEFORE collection starts.

    This runs before any imports, so config.py won't fail on module load.
    """
    os.environ.setdefault("ANTHROPIC_API_KEY", "test-anthropic-key-123")
    os.environ.setdefault("DATABASE_URL", "sqlite://")
    os.environ.setdefault("STRIPE_SECRET_KEY", "sk_test_123")
    os.environ.setdefault("RESEND_API_KEY", "re_test_456")
    os.environ.setdefault("ADMIN_EMAIL", "admin@dgtldental.com")
    os.environ.setdefault("ADMIN_PASSWORD", "correct-horse")
    os.environ["METRICS_ENABLED"] = "false"


@pytest.fixture
def store():
    """A fresh in-memory practice store with the schema created."""
    from dgtl_dental.services.store import PracticeStore

    practice_store = PracticeStore("sqlite://")
    practice_store.init_db()
    yield practice_store
    practice_store.engine.dispose()


@pytest.fixture
def make_practice(store):
    """Factory fixture that stores a practice with sensible defaults."""
    from dgtl_dental.models import SubscriptionStatus

    def _make(clinic_id: str = "brightsmil-1234", **overrides):
        fields = {
            "clinic_id": clinic_id,
            "name": "Bright Smiles Dental",
            "address": "1 Elm St, Austin, TX 78701",
            "phone": "(512) 555-0100",
            "email": "front@brightsmiles.com",
            "office_hours": "Mon 8:00 AM-5:00 PM",
            "services_offered": ["General Cleanings", "Invisalign"],
            "insurance_accepted": ["Delta Dental"],
            "emergency_instructions": "Call the office line.",
            "subscription_status": SubscriptionStatus.ACTIVE,
        }
        fields.update(overrides)
        return store.create_practice(**fields)

    return _make


@pytest.fixture
def mock_http_response():
    """Factory fixture for creating mock httpx responses."""

    def _make(data: dict | None = None, status_code: int = 200):
        mock = MagicMock()
        mock.status_code = status_code
        mock.json.return_value = data if data is not None else {}
        mock.text = str(data)
        return mock

    return _make
