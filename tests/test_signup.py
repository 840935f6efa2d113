"""Tests for the three-step signup pipeline."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import OperationalError

from dgtl_dental.models import SubscriptionStatus
from dgtl_dental.services.checkout import CheckoutError, CheckoutSession
from dgtl_dental.signup import (
    PAYMENT_STEP,
    AccountInfo,
    DayHours,
    PracticeDetails,
    SignupError,
    SignupPipeline,
    can_advance,
    format_office_hours,
    generate_clinic_id,
    is_step1_valid,
    is_step2_valid,
)

CHECKOUT_URL = "https://checkout.stripe.com/c/pay/cs_test_abc"


def _account(**overrides) -> AccountInfo:
    data = {
        "firstName": "Jane",
        "lastName": "Doe",
        "email": "Jane@BrightSmiles.com",
        "password": "s3cret!",
        "practiceWebsite": "https://brightsmiles.com",
    }
    data.update(overrides)
    return AccountInfo.model_validate(data)


def _practice(**overrides) -> PracticeDetails:
    data = {
        "practiceName": "Bright Smiles Dental",
        "streetAddress": "1 Elm St",
        "city": "Austin",
        "state": "TX",
        "zip": "78701",
        "practicePhone": "(512) 555-0100",
        "officeEmail": "front@brightsmiles.com",
        "officeHours": {
            "monday": {"isOpen": True, "startTime": "8:00 AM", "endTime": "5:00 PM"},
            "sunday": {"isOpen": False, "startTime": "", "endTime": ""},
        },
        "servicesOffered": ["Invisalign"],
        "insuranceAccepted": "Delta Dental, Cigna Dental",
        "emergencyPolicy": "Call the office line.",
        "needInstallHelp": True,
    }
    data.update(overrides)
    return PracticeDetails.model_validate(data)


@pytest.fixture
def checkout():
    service = MagicMock()
    service.create_session.return_value = CheckoutSession(url=CHECKOUT_URL, session_id="cs_test_abc")
    return service


@pytest.fixture
def pipeline(store, checkout):
    p = SignupPipeline(store, checkout, account=_account(), practice=_practice())
    p.next()
    p.next()
    assert p.step == PAYMENT_STEP
    return p


class TestHelpers:
    def test_generate_clinic_id(self):
        assert generate_clinic_id("Bright Smiles Dental!", now_ms=1700000001234) == "brightsmil-1234"

    def test_generate_clinic_id_short_name(self):
        assert generate_clinic_id("A&B", now_ms=42) == "ab-42"

    def test_format_office_hours_in_weekday_order(self):
        hours = {
            "friday": DayHours(is_open=True, start_time="9:00 AM", end_time="1:00 PM"),
            "monday": DayHours(is_open=True, start_time="8:00 AM", end_time="5:00 PM"),
            "tuesday": DayHours(is_open=False),
        }
        assert format_office_hours(hours) == "Mon 8:00 AM-5:00 PM, Fri 9:00 AM-1:00 PM"

    def test_format_office_hours_none_open(self):
        assert format_office_hours({}) == "Hours not specified"


class TestValidation:
    def test_step1_requires_password(self):
        assert is_step1_valid(_account())
        assert not is_step1_valid(_account(password=""))

    def test_step1_phone_is_optional(self):
        assert is_step1_valid(_account(phone=""))

    def test_step2_valid(self):
        assert is_step2_valid(_practice())

    def test_step2_requires_an_open_day(self):
        closed = {"monday": {"isOpen": False, "startTime": "8:00 AM", "endTime": "5:00 PM"}}
        assert not can_advance(2, _account(), _practice(officeHours=closed))

    @pytest.mark.parametrize(
        "override",
        [
            {"servicesOffered": []},
            {"insuranceAccepted": ""},
            {"emergencyPolicy": ""},
            {"zip": ""},
            {"officeEmail": ""},
        ],
    )
    def test_step2_required_fields(self, override):
        assert not is_step2_valid(_practice(**override))

    def test_unknown_step_cannot_advance(self):
        assert not can_advance(4, _account(), _practice())


class TestNavigation:
    def test_next_blocked_by_invalid_step(self, store, checkout):
        p = SignupPipeline(store, checkout, account=_account(email=""), practice=_practice())
        assert not p.next()
        assert p.step == 1

    def test_back_stops_at_first_step(self, store, checkout):
        p = SignupPipeline(store, checkout, account=_account(), practice=_practice())
        p.next()
        assert p.back()
        assert not p.back()
        assert p.step == 1

    def test_next_stops_at_payment_step(self, pipeline):
        assert not pipeline.next()
        assert pipeline.step == PAYMENT_STEP


class TestSubmit:
    def test_submit_stores_pending_practice_and_returns_url(self, pipeline, store, checkout):
        url = pipeline.submit("https://dgtldental.com")

        assert url == CHECKOUT_URL
        practice = store.get_practice(pipeline.clinic_id)
        assert practice.subscription_status is SubscriptionStatus.PENDING
        assert practice.address == "1 Elm St, Austin, TX 78701"
        assert practice.office_hours == "Mon 8:00 AM-5:00 PM"
        assert practice.insurance_accepted == ["Delta Dental", "Cigna Dental"]
        assert practice.contact_email == "jane@brightsmiles.com"

        kwargs = checkout.create_session.call_args[1]
        assert kwargs["clinic_id"] == pipeline.clinic_id
        assert kwargs["need_install_help"] is True
        assert kwargs["origin"] == "https://dgtldental.com"

    def test_checkout_failure_stays_on_payment_step(self, pipeline, store, checkout):
        checkout.create_session.side_effect = CheckoutError("Stripe down")

        with pytest.raises(SignupError) as exc_info:
            pipeline.submit("https://dgtldental.com")

        assert exc_info.value.stage == "checkout"
        assert pipeline.step == PAYMENT_STEP
        assert pipeline.error == "Failed to create payment session. Please try again."
        practice = store.get_practice(pipeline.clinic_id)
        assert practice.subscription_status is SubscriptionStatus.PENDING

    def test_retry_after_checkout_failure_reuses_record(self, pipeline, store, checkout):
        checkout.create_session.side_effect = CheckoutError("Stripe down")
        with pytest.raises(SignupError):
            pipeline.submit("https://dgtldental.com")
        first_id = pipeline.clinic_id

        checkout.create_session.side_effect = None
        assert pipeline.submit("https://dgtldental.com") == CHECKOUT_URL
        assert pipeline.clinic_id == first_id
        assert len(store.list_practices()) == 1

    def test_persist_failure_skips_checkout(self, pipeline, checkout):
        broken = MagicMock()
        broken.get_practice.return_value = None
        broken.create_practice.side_effect = OperationalError("INSERT", {}, Exception("locked"))
        pipeline._store = broken

        with pytest.raises(SignupError) as exc_info:
            pipeline.submit("https://dgtldental.com")

        assert exc_info.value.stage == "persist"
        checkout.create_session.assert_not_called()
        assert pipeline.step == PAYMENT_STEP

    def test_submit_before_payment_step_is_rejected(self, store, checkout):
        p = SignupPipeline(store, checkout, account=_account(), practice=_practice())
        with pytest.raises(SignupError) as exc_info:
            p.submit("https://dgtldental.com")
        assert exc_info.value.stage == "validation"
        checkout.create_session.assert_not_called()
        assert store.list_practices() == []

    def test_password_is_not_stored(self, pipeline, store):
        pipeline.submit("https://dgtldental.com")
        practice = store.get_practice(pipeline.clinic_id)
        assert not hasattr(practice, "password")
