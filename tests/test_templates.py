"""Tests for the keyword-matched templated answers."""

from __future__ import annotations

import pytest

from dgtl_dental.chat.facts import DEMO_PRACTICE, PracticeFacts, unconfigured_facts
from dgtl_dental.chat.templates import (
    DISCLAIMER,
    ResponseResolver,
    TemplateRule,
    practice_rules,
    resolver_for,
)


@pytest.fixture
def resolver() -> ResponseResolver:
    return resolver_for(DEMO_PRACTICE)


def _rule_named(name: str) -> TemplateRule:
    return next(r for r in practice_rules(DEMO_PRACTICE) if r.name == name)


class TestRuleOrder:
    def test_default_rules_are_declared_in_precedence_order(self):
        names = [r.name for r in practice_rules(DEMO_PRACTICE)]
        assert names == [
            "office_hours",
            "location",
            "services",
            "insurance",
            "contact",
            "emergency",
            "appointment",
        ]

    def test_every_default_template_ends_with_disclaimer(self):
        for rule in practice_rules(DEMO_PRACTICE):
            assert rule.template.endswith(DISCLAIMER), rule.name


class TestResolve:
    @pytest.mark.parametrize(
        ("text", "rule_name"),
        [
            ("What are your hours?", "office_hours"),
            ("Where is your office located? I need the address", "location"),
            ("Which procedures do you perform?", "services"),
            ("Do you take my insurance?", "insurance"),
            ("What's your phone number?", "contact"),
            ("I have an urgent toothache", "emergency"),
            ("Can I book a cleaning?", "appointment"),
        ],
    )
    def test_single_keyword_returns_that_template(self, resolver, text, rule_name):
        assert resolver.resolve(text) == _rule_named(rule_name).template

    def test_first_declared_rule_wins_when_two_match(self, resolver):
        answer = resolver.resolve("Does your insurance cover visits during your hours?")
        assert answer == _rule_named("office_hours").template

    def test_matching_is_case_insensitive(self, resolver):
        assert resolver.resolve("WHERE ARE YOU") == _rule_named("location").template

    def test_no_keyword_returns_none(self, resolver):
        assert resolver.resolve("How much does whitening cost?") is None

    @pytest.mark.parametrize("text", ["", "   ", None, 42])
    def test_blank_or_non_string_input_is_no_match(self, resolver, text):
        assert resolver.resolve(text) is None

    def test_templates_carry_practice_facts(self, resolver):
        answer = resolver.resolve("what are your hours")
        assert DEMO_PRACTICE.phone in answer
        assert "Saturday: 9:00 AM - 2:00 PM" in answer

    def test_custom_rules_keep_declaration_order(self):
        custom = ResponseResolver(
            [
                TemplateRule("a", ("teeth",), "first"),
                TemplateRule("b", ("teeth", "whitening"), "second"),
            ]
        )
        assert custom.resolve("teeth whitening") == "first"
        assert custom.resolve("whitening") == "second"


class TestQAPairs:
    def test_qa_pair_takes_precedence_over_default_rules(self):
        facts = PracticeFacts(
            clinic_id="c1",
            name="Test Dental",
            address="1 Main St",
            phone="555",
            qa_pairs=(("Do you offer payment plans?", "Yes, through CareCredit."),),
        )
        answer = resolver_for(facts).resolve("do you offer payment plans? what are your hours")
        assert answer == "Yes, through CareCredit."

    def test_qa_pair_ignores_trailing_question_mark(self):
        facts = PracticeFacts(
            clinic_id="c1", name="T", address="A", phone="P",
            qa_pairs=(("Is parking free?", "Yes, behind the building."),),
        )
        assert resolver_for(facts).resolve("Is parking free") == "Yes, behind the building."


class TestUnconfiguredFacts:
    def test_generic_copy_still_answers_hours(self):
        answer = resolver_for(unconfigured_facts("missing-1")).resolve("hours?")
        assert "Please contact us for hours" in answer
