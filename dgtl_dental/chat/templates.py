"""Keyword-matched templated answers.

The widget tries these before calling the remote model. Rules are checked
in the order they are declared and the first rule with a matching keyword
wins; there is no scoring. An input that mentions both hours and insurance
gets the hours answer because that rule comes first.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from dgtl_dental.chat.facts import PracticeFacts

logger = logging.getLogger(__name__)

DISCLAIMER = (
    "\n\nPlease remember that this is for informational purposes only and not a "
    "substitute for professional dental advice. For specific concerns, consult "
    "with a qualified dentist."
)


@dataclass(frozen=True)
class TemplateRule:
    """A keyword set bound to a fixed answer."""

    name: str
    keywords: tuple[str, ...]
    template: str

    def matches(self, folded: str) -> bool:
        return any(keyword in folded for keyword in self.keywords)


class ResponseResolver:
    """Ordered list of template rules, first match wins."""

    def __init__(self, rules: Iterable[TemplateRule]) -> None:
        self._rules: tuple[TemplateRule, ...] = tuple(rules)

    @property
    def rules(self) -> tuple[TemplateRule, ...]:
        return self._rules

    def match(self, text: object) -> TemplateRule | None:
        if not isinstance(text, str) or not text.strip():
            return None
        folded = text.casefold()
        for rule in self._rules:
            if rule.matches(folded):
                return rule
        return None

    def resolve(self, text: object) -> str | None:
        """Return the templated answer for *text*, or ``None`` if nothing matches."""
        rule = self.match(text)
        if rule is None:
            return None
        logger.debug("Template %r matched", rule.name)
        return rule.template


def _bullets(items: Sequence[str]) -> str:
    return "• " + "\n• ".join(items)


def practice_rules(facts: PracticeFacts) -> list[TemplateRule]:
    """The default rule set for one practice, in precedence order."""
    f = facts
    return [
        TemplateRule(
            name="office_hours",
            keywords=("hours", "open", "closed"),
            template=(
                f"Our office hours are:\n\n{f.office_hours}\n\n"
                f"You can schedule an appointment by calling us at {f.phone} "
                f"or through our website at {f.website}.{DISCLAIMER}"
            ),
        ),
        TemplateRule(
            name="location",
            keywords=("location", "address", "where", "directions"),
            template=(
                f"We're located at {f.address}.\n\n"
                f"You can find detailed directions on our website at {f.website} "
                f"or call us at {f.phone} if you need help finding us.{DISCLAIMER}"
            ),
        ),
        TemplateRule(
            name="services",
            keywords=("service", "treatment", "what do you do", "procedures"),
            template=(
                f"At {f.name}, we offer a comprehensive range of dental services including:\n\n"
                f"{_bullets(f.services)}\n\n"
                "We provide personalized care for patients of all ages. Would you like to "
                "know more about any specific treatment or schedule a consultation? "
                f"Call us at {f.phone}.{DISCLAIMER}"
            ),
        ),
        TemplateRule(
            name="insurance",
            keywords=("insurance", "coverage", "accepted"),
            template=(
                "We accept most major dental insurance plans, including:\n\n"
                f"{_bullets(f.insurance)}\n• Most PPO plans\n\n"
                "We also offer flexible payment options and financing plans. Please bring "
                f"your insurance card to your appointment or call us at {f.phone} to "
                f"verify coverage.{DISCLAIMER}"
            ),
        ),
        TemplateRule(
            name="contact",
            keywords=("phone", "call", "contact", "number"),
            template=(
                f"You can reach {f.name} at:\n\n"
                f"📞 Phone: {f.phone}\n"
                f"📧 Email: {f.email}\n"
                f"🌐 Website: {f.website}\n"
                f"📍 Address: {f.address}\n\n"
                f"We're here to help with any questions or to schedule your appointment!{DISCLAIMER}"
            ),
        ),
        TemplateRule(
            name="emergency",
            keywords=("emergency", "urgent", "pain", "after hours"),
            template=(
                "For dental emergencies:\n\n"
                f"During office hours: Call us immediately at {f.phone}\n"
                f"After hours: {f.emergency_instructions}\n\n"
                "Common dental emergencies we treat:\n"
                "• Severe tooth pain\n"
                "• Knocked-out teeth\n"
                "• Broken or chipped teeth\n"
                "• Lost fillings or crowns\n"
                "• Dental abscesses\n\n"
                f"Don't wait - dental emergencies require prompt attention!{DISCLAIMER}"
            ),
        ),
        TemplateRule(
            name="appointment",
            keywords=("appointment", "schedule", "book", "visit"),
            template=(
                f"I'd be happy to help you schedule an appointment at {f.name}!\n\n"
                "You can schedule by:\n"
                f"📞 Calling us at {f.phone}\n"
                f"🌐 Online booking at {f.website}\n"
                f"📧 Emailing us at {f.email}\n\n"
                "What type of appointment are you looking for?"
                f"{DISCLAIMER}"
            ),
        ),
    ]


def qa_pair_rules(pairs: Iterable[tuple[str, str]]) -> list[TemplateRule]:
    """Operator-defined Q&A overrides; a pair matches on its full question text."""
    rules = []
    for index, (question, answer) in enumerate(pairs):
        folded = question.strip().casefold().rstrip("?").strip()
        if folded:
            rules.append(TemplateRule(name=f"qa_{index}", keywords=(folded,), template=answer))
    return rules


def resolver_for(facts: PracticeFacts) -> ResponseResolver:
    """Custom Q&A overrides first, then the default practice rules."""
    return ResponseResolver([*qa_pair_rules(facts.qa_pairs), *practice_rules(facts)])
