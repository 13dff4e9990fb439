from __future__ import annotations

import pytest

from crm_contracts.services.contracts.search import (
    LeadSearch,
    ilike,
    parse_search_query,
    search_variants,
)


def test_empty_query_is_unbounded():
    criteria = parse_search_query("  ")

    assert criteria.is_unbounded
    assert not criteria.has_conditions


def test_single_character_query_matches_nothing():
    criteria = parse_search_query("a")

    assert not criteria.is_unbounded
    assert not criteria.has_conditions
    assert not criteria.has_legacy_conditions


def test_prefixed_lead_number():
    criteria = parse_search_query("C5")

    assert criteria.lead_number == "C5"
    assert criteria.legacy_id == 5
    assert criteria.phone_digits is None
    assert criteria.new_lead_number_patterns() == ("%C5%", "L%C5%", "C%C5%")


def test_short_number_is_lead_number_and_legacy_id():
    criteria = parse_search_query("12")

    assert criteria.lead_number == "12"
    assert criteria.legacy_id == 12
    assert criteria.email_terms == ()


@pytest.mark.parametrize("query", ["0501234567", "050-1234567", "1234567"])
def test_phone_like_queries(query):
    criteria = parse_search_query(query)

    assert criteria.phone_digits == query.replace("-", "")
    assert criteria.lead_number is None
    assert criteria.legacy_id is None


def test_email_query_searches_email_and_name():
    criteria = parse_search_query("ben@example.com")

    assert criteria.email_terms == ("ben@example.com",)
    assert criteria.name_terms == ("ben@example.com",)
    assert criteria.lead_number is None


def test_latin_name_gets_hebrew_variant():
    assert search_variants("dana") == ["dana", "דאנא"]


def test_hebrew_name_gets_latin_variant():
    assert search_variants("דנה") == ["דנה", "dnh"]


def test_mixed_text_has_no_variant():
    assert search_variants("dana 5") == ["dana 5"]


def test_legacy_conditions_without_lead_number():
    criteria = LeadSearch(text="ben", name_terms=("ben",))

    assert criteria.has_conditions
    assert criteria.has_legacy_conditions
    assert criteria.new_lead_number_patterns() == ()


@pytest.mark.parametrize(
    ("value", "pattern", "expected"),
    [
        ("Alice Avraham", "%avra%", True),
        ("L5", "L%5%", True),
        ("C5", "L%5%", False),
        ("a.b", "a_b", True),
        ("a+b", "a.b", False),
        (None, "%", False),
    ],
)
def test_ilike(value, pattern, expected):
    assert ilike(value, pattern) is expected
