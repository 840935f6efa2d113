"""Practice facts used to fill templated answers and assistant prompts."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

DEMO_CLINIC_ID = "demo-clinic-123"


@dataclass(frozen=True)
class PracticeFacts:
    clinic_id: str
    name: str
    address: str
    phone: str
    email: str = ""
    website: str = ""
    office_hours: str = ""
    services: tuple[str, ...] = ()
    insurance: tuple[str, ...] = ()
    emergency_instructions: str = ""
    greeting: str = "Hi! How can I help you with your dental care today?"
    qa_pairs: tuple[tuple[str, str], ...] = field(default=())


DEMO_PRACTICE = PracticeFacts(
    clinic_id=DEMO_CLINIC_ID,
    name="Smile Family Dental",
    address="123 Main Street, Downtown City, TX 75201",
    phone="(555) 123-CARE",
    email="info@smilefamilydental.com",
    website="www.smilefamilydental.com",
    office_hours=(
        "Monday - Thursday: 8:00 AM - 6:00 PM\n"
        "Friday: 8:00 AM - 5:00 PM\n"
        "Saturday: 9:00 AM - 2:00 PM\n"
        "Sunday: Closed"
    ),
    services=(
        "General Dentistry",
        "Teeth Cleaning & Preventive Care",
        "Dental Fillings",
        "Crowns & Bridges",
        "Root Canal Therapy",
        "Dental Implants",
        "Teeth Whitening",
        "Invisalign",
        "Emergency Dental Care",
        "Pediatric Dentistry",
    ),
    insurance=(
        "Delta Dental",
        "Cigna",
        "Aetna",
        "MetLife",
        "Blue Cross Blue Shield",
        "United Healthcare",
        "Humana",
    ),
    emergency_instructions=(
        "For dental emergencies after hours, please call our main number at "
        "(555) 123-CARE and follow the prompts. For severe emergencies, visit "
        "your nearest emergency room."
    ),
)


def unconfigured_facts(clinic_id: str) -> PracticeFacts:
    """Generic copy for a practice id with no stored record."""
    return PracticeFacts(
        clinic_id=clinic_id,
        name="Dental Practice",
        address="Please contact us for location details",
        phone="Please call for appointments",
        office_hours="Please contact us for hours",
        services=("General Dentistry",),
        insurance=("Please call to verify insurance",),
        emergency_instructions="Please call our main number for emergencies.",
        greeting="Hi! How can I help you today?",
    )


def facts_from_record(record: Any, qa_pairs: list[tuple[str, str]] | None = None) -> PracticeFacts:
    """Build facts from a stored practice row (see ``services.store.Practice``)."""
    return PracticeFacts(
        clinic_id=record.clinic_id,
        name=record.name,
        address=record.address,
        phone=record.phone,
        email=record.email or "",
        website=record.website_url or "",
        office_hours=record.office_hours or "",
        services=tuple(record.services_offered or ()),
        insurance=tuple(record.insurance_accepted or ()),
        emergency_instructions=record.emergency_instructions or "",
        greeting=f"Hi! How can I help you with your visit to {record.name}?",
        qa_pairs=tuple(qa_pairs or ()),
    )


def widget_config(facts: PracticeFacts, overrides: dict[str, Any] | None = None) -> dict[str, Any]:
    """Public widget configuration for a practice, defaults first."""
    return {
        "primaryColor": "#2563eb",
        "theme": "light",
        "position": "bottom-right",
        "greeting": facts.greeting,
        **(overrides or {}),
    }


def public_config(facts: PracticeFacts, overrides: dict[str, Any] | None = None) -> dict[str, Any]:
    """What the embedded widget fetches to render a practice."""
    return {
        "clinic_id": facts.clinic_id,
        "name": facts.name,
        "address": facts.address,
        "phone": facts.phone,
        "office_hours": facts.office_hours,
        "services_offered": list(facts.services),
        "insurance_accepted": list(facts.insurance),
        "emergency_instructions": facts.emergency_instructions,
        "widget_config": widget_config(facts, overrides),
    }
