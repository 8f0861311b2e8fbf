"""
Unit tests for reference-data matching.
"""
import pytest

from core.matching import ReferenceMatcher, calculate_similarity, contains_term, is_recurring_bill
from core.reference_data import REFERENCE_RULES, ReferenceRule
from core.schema import ClassificationSource


@pytest.fixture
def matcher():
    return ReferenceMatcher()


def test_contains_term_whole_words_only():
    assert contains_term("wilson parking pty ltd", "parking")
    assert contains_term("bp connect", "bp")
    assert not contains_term("bpay transfer", "bp")
    assert not contains_term("", "bp")


def test_calculate_similarity():
    assert calculate_similarity("Officeworks", "officeworks") == 1.0
    assert calculate_similarity("", "officeworks") == 0.0
    assert 0.8 < calculate_similarity("Ofiiceworks", "officeworks") < 1.0


def test_parking_merchant_is_deductible(matcher):
    result = matcher.classify("WILSON PARKING", -180.00)
    assert result is not None
    assert result.source == ClassificationSource.REFERENCE
    assert result.is_tax_deductible is True
    assert result.tax_category == "Business Expense"
    assert result.confidence >= 0.8


def test_classify_is_idempotent(matcher):
    first = matcher.classify("Adobe Creative Cloud", -54.99, "Adobe")
    second = matcher.classify("Adobe Creative Cloud", -54.99, "Adobe")
    assert first == second


def test_unmatched_debit_returns_none(matcher):
    assert matcher.classify("Bunnings Warehouse", -42.50) is None


def test_unmatched_credit_is_low_confidence_income(matcher):
    result = matcher.classify("Refund from ACME", 120.00)
    assert result.category == "Income"
    assert result.confidence == 0.4
    assert result.is_tax_deductible is False


def test_context_dependent_rules_stay_below_acceptance(matcher):
    """Rideshare and meals can be business or personal, so they never auto-accept."""
    rideshare = matcher.classify("UBER *TRIP", -23.40)
    meal = matcher.classify("Starbucks Sydney", -6.20)
    assert rideshare.confidence < 0.8
    assert meal.confidence < 0.8


def test_salary_credit(matcher):
    result = matcher.classify("ACME PTY LTD SALARY", 3200.00)
    assert result.category == "Income"
    assert result.tax_category == "Income"
    assert result.confidence >= 0.8


def test_direction_mismatch_lowers_confidence(matcher):
    debit = matcher.classify("Officeworks", -30.00)
    credit = matcher.classify("Officeworks", 30.00)
    assert credit.confidence == pytest.approx(debit.confidence * 0.85, abs=1e-4)


def test_fuzzy_merchant_match(matcher):
    result = matcher.classify("Card purchase 4411", -65.00, merchant="Ofiiceworks")
    assert result is not None
    assert result.category == "Office Supplies"
    assert "similar to" in result.reasoning


def test_fuzzy_match_skipped_for_long_merchant_names(matcher):
    assert matcher.classify("Card purchase 4411", -65.00, merchant="Ofiiceworks Wholesale Group") is None


def test_keyword_fraction_scales_confidence():
    rule = ReferenceRule(
        name="test",
        category="Test",
        tax_category="Personal",
        is_tax_deductible=False,
        business_use_percentage=0,
        keywords=("alpha", "beta"),
        confidence_floor=0.5,
        confidence_ceiling=0.9,
    )
    matcher = ReferenceMatcher(rules=[rule])
    one, _ = matcher.score_rule(rule, "alpha charge", "", -1.0)
    both, _ = matcher.score_rule(rule, "alpha beta charge", "", -1.0)
    assert one == pytest.approx(0.7)
    assert both == pytest.approx(0.9)


def test_earlier_rule_wins_ties():
    first = ReferenceRule(
        name="first", category="A", tax_category="Personal", is_tax_deductible=False,
        business_use_percentage=0, keywords=("widget",),
    )
    second = ReferenceRule(
        name="second", category="B", tax_category="Personal", is_tax_deductible=False,
        business_use_percentage=0, keywords=("widget",),
    )
    result = ReferenceMatcher(rules=[first, second]).classify("widget", -1.0)
    assert result.category == "A"


def test_coverage_stats(matcher):
    stats = matcher.coverage_stats()
    assert stats["rules"] == len(REFERENCE_RULES)
    assert stats["total_patterns"] == stats["merchant_patterns"] + stats["category_signatures"]
    assert stats["total_patterns"] > 0


def test_is_recurring_bill():
    assert is_recurring_bill("Adobe monthly subscription", -54.99)
    assert is_recurring_bill("TELSTRA DIRECT DEBIT", -89.00)
    assert not is_recurring_bill("Monthly subscription refund", 54.99)
    assert not is_recurring_bill("Automotive parts", -120.00)
    assert not is_recurring_bill("Coffee", -4.50)
