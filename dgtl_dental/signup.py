"""Three-step practice signup: account, practice details, payment.

Each step is gated by a pure predicate over the form state
(:func:`can_advance`). The final step stores the practice as ``pending``
and hands the browser a Stripe checkout URL; the billing webhook, not
this module, later flips the practice to ``active``.
"""

from __future__ import annotations

import logging
import re
import time

from pydantic import BaseModel, ConfigDict, Field, SecretStr
from pydantic.alias_generators import to_camel
from sqlalchemy.exc import SQLAlchemyError

from dgtl_dental.models import SubscriptionStatus
from dgtl_dental.services.checkout import CheckoutError, CheckoutService
from dgtl_dental.services.store import PracticeStore

logger = logging.getLogger(__name__)

FIRST_STEP, PRACTICE_STEP, PAYMENT_STEP = 1, 2, 3

DAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")
DAY_ABBREVIATIONS = ("Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun")

SERVICE_OPTIONS = (
    "General Cleanings",
    "Crowns & Bridges",
    "Dental Implants",
    "Invisalign",
    "Root Canals",
    "Extractions",
    "Cosmetic Dentistry",
    "Periodontal Treatment",
    "Pediatric Dentistry",
    "Emergency Dental Care",
)

INSURANCE_OPTIONS = (
    "Delta Dental",
    "Cigna Dental",
    "Aetna Dental",
    "UnitedHealthcare Dental",
    "MetLife Dental",
    "Guardian Dental",
    "Humana Dental",
    "Blue Cross Blue Shield",
    "Ameritas",
    "Principal Financial Group",
)

HOW_DID_YOU_HEAR_OPTIONS = (
    "Google Search",
    "Social Media",
    "Referral from Colleague",
    "Dental Conference",
    "Online Ad",
    "Other",
)


class _FormModel(BaseModel):
    """Accepts the camelCase keys the signup form posts."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class AccountInfo(_FormModel):
    first_name: str = ""
    last_name: str = ""
    email: str = ""
    phone: str = ""
    practice_website: str = ""
    # handed to the auth provider; never stored with the practice
    password: SecretStr = SecretStr("")
    how_did_you_hear: str = ""


class DayHours(_FormModel):
    is_open: bool = False
    start_time: str = ""
    end_time: str = ""


class PracticeDetails(_FormModel):
    practice_name: str = ""
    street_address: str = ""
    city: str = ""
    state: str = ""
    zip: str = ""
    practice_phone: str = ""
    office_email: str = ""
    office_hours: dict[str, DayHours] = Field(default_factory=dict)
    services_offered: list[str] = Field(default_factory=list)
    insurance_accepted: str = ""
    emergency_policy: str = ""
    practice_description: str = ""
    need_install_help: bool = False

    @property
    def full_address(self) -> str:
        return f"{self.street_address}, {self.city}, {self.state} {self.zip}"

    def insurance_list(self) -> list[str]:
        return [s.strip() for s in self.insurance_accepted.split(",") if s.strip()]


class SignupError(Exception):
    """A signup submission failed; ``user_message`` is safe to show."""

    def __init__(self, user_message: str, stage: str):
        self.user_message = user_message
        self.stage = stage
        super().__init__(f"{stage}: {user_message}")


# ── Pure helpers ─────────────────────────────────────────────────────


def generate_clinic_id(name: str, now_ms: int | None = None) -> str:
    """Slug of the practice name plus the last four digits of the ms clock.

    >>> generate_clinic_id("Bright Smiles Dental!", now_ms=1700000001234)
    'brightsmil-1234'
    """
    cleaned = re.sub(r"[^a-z0-9]", "", name.lower())
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    return f"{cleaned[:10]}-{str(now_ms)[-4:]}"


def format_office_hours(office_hours: dict[str, DayHours]) -> str:
    """Render open days as ``"Mon 8:00 AM-5:00 PM, ..."`` in weekday order."""
    open_days = []
    for day, abbreviation in zip(DAYS, DAY_ABBREVIATIONS):
        hours = office_hours.get(day)
        if hours and hours.is_open and hours.start_time and hours.end_time:
            open_days.append(f"{abbreviation} {hours.start_time}-{hours.end_time}")
    return ", ".join(open_days) if open_days else "Hours not specified"


def is_step1_valid(account: AccountInfo) -> bool:
    return all(
        [
            account.first_name,
            account.last_name,
            account.email,
            account.password.get_secret_value(),
        ]
    )


def is_step2_valid(practice: PracticeDetails) -> bool:
    has_open_day = any(day.is_open for day in practice.office_hours.values())
    return (
        all(
            [
                practice.practice_name,
                practice.street_address,
                practice.city,
                practice.state,
                practice.zip,
                practice.practice_phone,
                practice.office_email,
                practice.insurance_accepted,
                practice.emergency_policy,
            ]
        )
        and has_open_day
        and len(practice.services_offered) > 0
    )


def can_advance(step: int, account: AccountInfo, practice: PracticeDetails) -> bool:
    """Whether the "Continue" action of *step* is enabled."""
    if step == FIRST_STEP:
        return is_step1_valid(account)
    if step == PRACTICE_STEP:
        return is_step2_valid(practice)
    if step == PAYMENT_STEP:
        return is_step1_valid(account) and is_step2_valid(practice)
    return False


# ── Pipeline ─────────────────────────────────────────────────────────


class SignupPipeline:
    """Form state plus the final submit for one signup attempt."""

    def __init__(
        self,
        store: PracticeStore,
        checkout: CheckoutService,
        *,
        account: AccountInfo | None = None,
        practice: PracticeDetails | None = None,
    ):
        self._store = store
        self._checkout = checkout
        self.account = account or AccountInfo()
        self.practice = practice or PracticeDetails()
        self.step = FIRST_STEP
        self.clinic_id: str | None = None
        self.error: str | None = None

    def next(self) -> bool:
        if self.step < PAYMENT_STEP and can_advance(self.step, self.account, self.practice):
            self.step += 1
            return True
        return False

    def back(self) -> bool:
        if self.step > FIRST_STEP:
            self.step -= 1
            return True
        return False

    def _persist(self) -> str:
        # A retry after a checkout failure reuses the pending record
        if self.clinic_id and self._store.get_practice(self.clinic_id) is not None:
            return self.clinic_id

        clinic_id = generate_clinic_id(self.practice.practice_name)
        p, a = self.practice, self.account
        try:
            self._store.create_practice(
                clinic_id=clinic_id,
                name=p.practice_name.strip(),
                address=p.full_address,
                phone=p.practice_phone,
                email=p.office_email,
                website_url=a.practice_website or None,
                office_hours=format_office_hours(p.office_hours),
                office_hours_detail={day: h.model_dump() for day, h in p.office_hours.items()},
                services_offered=list(p.services_offered),
                insurance_accepted=p.insurance_list(),
                emergency_instructions=p.emergency_policy,
                practice_description=p.practice_description or None,
                contact_first_name=a.first_name.strip(),
                contact_last_name=a.last_name.strip(),
                contact_email=a.email.strip().lower(),
                contact_phone=a.phone or None,
                how_did_you_hear=a.how_did_you_hear or None,
                need_install_help=p.need_install_help,
                subscription_status=SubscriptionStatus.PENDING,
            )
        except SQLAlchemyError as exc:
            logger.exception("Could not store practice %s", clinic_id)
            raise SignupError(
                "Failed to save practice information. Please try again.", "persist",
            ) from exc
        self.clinic_id = clinic_id
        return clinic_id

    def submit(self, origin: str) -> str:
        """Store the practice as pending and return the checkout URL.

        On any failure the pipeline stays on the payment step, ``error``
        holds the user-facing message and :class:`SignupError` is raised.
        """
        self.error = None
        try:
            if self.step != PAYMENT_STEP or not can_advance(PAYMENT_STEP, self.account, self.practice):
                raise SignupError("Please complete all required fields.", "validation")

            clinic_id = self._persist()
            try:
                session = self._checkout.create_session(
                    clinic_id=clinic_id,
                    email=self.account.email,
                    practice_name=self.practice.practice_name,
                    need_install_help=self.practice.need_install_help,
                    origin=origin,
                )
            except CheckoutError as exc:
                logger.warning("Checkout failed for %s: %s", clinic_id, exc)
                raise SignupError(
                    "Failed to create payment session. Please try again.", "checkout",
                ) from exc
        except SignupError as exc:
            self.error = exc.user_message
            raise

        logger.info("Signup for %s redirected to checkout", clinic_id)
        return session.url
