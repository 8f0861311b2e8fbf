"""
Unit tests for normalization and request validation.
"""
import pytest

from core.exceptions import ValidationError
from core.normalize import (
    bucket_amount,
    build_signature,
    clean_amount,
    normalize_string,
    normalize_transaction,
    normalize_transactions,
    parse_user_profile,
)


def test_normalize_string():
    assert normalize_string("  WILSON   Parking ") == "wilson parking"
    assert normalize_string(None) == ""
    assert normalize_string("") == ""


def test_clean_amount_keeps_sign():
    """Currency symbols and separators are removed, the sign survives."""
    assert clean_amount("-$1,180.50") == -1180.50
    assert clean_amount("180.00 AUD") == 180.0
    assert clean_amount(-42) == -42.0
    assert clean_amount("abc") is None
    assert clean_amount(None) is None
    assert clean_amount(True) is None


def test_bucket_amount_small_amounts():
    """Below the breakpoint amounts snap to whole units."""
    assert bucket_amount(12.49) == "12"
    assert bucket_amount(12.5) == "13"
    assert bucket_amount(-12.5) == "-13"
    assert bucket_amount(99.4) == "99"


def test_bucket_amount_large_amounts():
    """At or above the breakpoint amounts snap to tens."""
    assert bucket_amount(-180.0) == "-180"
    assert bucket_amount(184.99) == "180"
    assert bucket_amount(185.0) == "190"
    assert bucket_amount(100.0) == "100"


def test_bucket_amount_custom_widths():
    assert bucket_amount(12.3, breakpoint=100, small_width=0.5, large_width=50) == "12.5"
    assert bucket_amount(260, breakpoint=100, small_width=0.5, large_width=50) == "250"


def test_build_signature():
    """Signature folds case and whitespace in text and buckets the amount."""
    first = build_signature("WILSON PARKING", -180.0, "Wilson Parking")
    second = build_signature("  wilson  parking", -183.0, "WILSON PARKING ")
    assert first == second == "wilson parking|-180|wilson parking"


def test_build_signature_without_merchant():
    assert build_signature("Coffee", -4.5) == "coffee|-5|"


def test_normalize_transaction_generates_id():
    txn = normalize_transaction({"description": "Adobe CC", "amount": "-$54.99"}, 3)
    assert txn.id.startswith("txn-3-")
    assert txn.amount == -54.99
    assert txn.description == "Adobe CC"


def test_normalize_transaction_accepts_camel_case_fields():
    txn = normalize_transaction(
        {
            "id": "t1",
            "description": "Client lunch",
            "amount": -80,
            "userNotes": "met with client",
            "userProfile": {"countryCode": "nz", "businessType": "SOLE_TRADER"},
        },
        0,
    )
    assert txn.user_notes == "met with client"
    assert txn.user_profile.country_code == "NZ"
    assert txn.user_profile.business_type == "SOLE_TRADER"


def test_normalize_transaction_missing_description():
    with pytest.raises(ValidationError) as exc_info:
        normalize_transaction({"amount": -10}, 2)
    assert exc_info.value.details["field"] == "description"
    assert exc_info.value.details["index"] == 2


def test_normalize_transaction_blank_description():
    with pytest.raises(ValidationError):
        normalize_transaction({"description": "   ", "amount": -10}, 0)


def test_normalize_transaction_invalid_amount():
    with pytest.raises(ValidationError) as exc_info:
        normalize_transaction({"description": "Fuel", "amount": "n/a"}, 1)
    assert exc_info.value.details["field"] == "amount"


def test_normalize_transaction_not_a_dict():
    with pytest.raises(ValidationError):
        normalize_transaction(["Fuel", -10], 0)


def test_normalize_transaction_bad_nested_field():
    with pytest.raises(ValidationError) as exc_info:
        normalize_transaction({"description": "Fuel", "amount": -10, "date": "not a date"}, 0)
    assert exc_info.value.details["errors"]


def test_normalize_transactions_rejects_empty_payload():
    with pytest.raises(ValidationError):
        normalize_transactions([])
    with pytest.raises(ValidationError):
        normalize_transactions(None)


def test_normalize_transactions_rejects_duplicate_ids():
    with pytest.raises(ValidationError) as exc_info:
        normalize_transactions([
            {"id": "a", "description": "Fuel", "amount": -10},
            {"id": "a", "description": "Parking", "amount": -5},
        ])
    assert exc_info.value.details == {"id": "a"}


def test_normalize_transactions_keeps_order():
    transactions = normalize_transactions([
        {"id": "1", "description": "Fuel", "amount": -10},
        {"id": "2", "description": "Parking", "amount": -5},
    ])
    assert [t.id for t in transactions] == ["1", "2"]


def test_parse_user_profile():
    assert parse_user_profile(None) is None
    profile = parse_user_profile({"countryCode": "au", "aiPsychology": "I WFH 3 days"})
    assert profile.country_code == "AU"
    assert profile.psychology == "I WFH 3 days"


def test_parse_user_profile_invalid():
    with pytest.raises(ValidationError):
        parse_user_profile({"countryCode": ["AU"]})
