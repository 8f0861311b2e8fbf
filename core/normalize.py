"""
Data normalization for incoming transactions and cache signatures.
Handles amount cleaning, text folding and request validation.
"""
import uuid
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Dict, List, Optional

from pydantic import ValidationError as PydanticValidationError

from core.exceptions import ValidationError
from core.logger import setup_logger
from core.schema import Transaction, UserProfile

logger = setup_logger(__name__)


def normalize_string(text: Optional[str]) -> str:
    """
    Normalize string for matching: lowercase, trim, remove extra spaces.

    Args:
        text: Input string

    Returns:
        Normalized string
    """
    if not text or not isinstance(text, str):
        return ""

    return " ".join(text.lower().strip().split())


def clean_amount(value: Any) -> Optional[float]:
    """
    Clean and normalize a signed amount.
    Removes spaces, currency symbols and thousands separators.

    Args:
        value: Raw amount value (string or number)

    Returns:
        Float value (sign preserved) or None if invalid
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, (int, float)):
        return float(value)

    amount_str = str(value).strip()
    if not amount_str:
        return None

    amount_str = amount_str.replace(" ", "").replace(",", "").replace("\xa0", "")

    # Keep digits, decimal point and sign ("-$180.00", "180.00 AUD")
    cleaned = ""
    for char in amount_str:
        if char.isdigit() or char in [".", "-"]:
            cleaned += char

    if not cleaned:
        logger.warning(f"Failed to parse amount: '{value}' - no numeric content")
        return None

    try:
        return float(cleaned)
    except (ValueError, TypeError) as e:
        logger.warning(f"Failed to parse amount: '{value}' -> {e}")
        return None


def bucket_amount(
    amount: float,
    breakpoint: float = 100.0,
    small_width: float = 1.0,
    large_width: float = 10.0,
) -> str:
    """
    Round a signed amount into its cache bucket.

    Amounts below the breakpoint (by absolute value) snap to the nearest
    small_width, larger ones to the nearest large_width. Rounding is half-up
    away from zero so -0.5 and 0.5 land in mirrored buckets.

    Args:
        amount: Signed transaction amount
        breakpoint: Absolute amount where the wider bucket starts
        small_width: Bucket width below the breakpoint
        large_width: Bucket width at or above the breakpoint

    Returns:
        Bucket label (e.g. "-180", "12")
    """
    try:
        value = Decimal(str(amount))
    except (InvalidOperation, ValueError):
        return "0"

    width = Decimal(str(small_width if abs(value) < Decimal(str(breakpoint)) else large_width))
    buckets = (value / width).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    bucketed = buckets * width

    if bucketed == bucketed.to_integral_value():
        return str(int(bucketed))
    return format(bucketed.normalize(), "f")


def build_signature(
    description: str,
    amount: float,
    merchant: Optional[str] = None,
    breakpoint: float = 100.0,
    small_width: float = 1.0,
    large_width: float = 10.0,
) -> str:
    """
    Build the normalized cache key for a transaction.

    Returns:
        "<description>|<amount bucket>|<merchant>"
    """
    return "|".join([
        normalize_string(description),
        bucket_amount(amount, breakpoint, small_width, large_width),
        normalize_string(merchant),
    ])


def _error_messages(error: PydanticValidationError) -> List[str]:
    """Flatten pydantic errors into JSON-safe strings."""
    messages = []
    for err in error.errors():
        location = ".".join(str(part) for part in err.get("loc", ()))
        messages.append(f"{location}: {err.get('msg')}" if location else str(err.get("msg")))
    return messages


def normalize_transaction(raw: Dict[str, Any], index: int) -> Transaction:
    """
    Validate and normalize a single raw transaction record.

    Args:
        raw: Transaction dictionary as received from the caller
        index: Position in the request (used for generated ids and errors)

    Returns:
        Immutable Transaction

    Raises:
        ValidationError: If required fields are missing or malformed
    """
    if not isinstance(raw, dict):
        raise ValidationError(
            f"Transaction at position {index} must be an object",
            details={"index": index},
        )

    description = raw.get("description")
    if not isinstance(description, str) or not description.strip():
        raise ValidationError(
            f"Transaction at position {index} is missing a description",
            details={"index": index, "field": "description"},
        )

    amount = clean_amount(raw.get("amount"))
    if amount is None:
        raise ValidationError(
            f"Transaction at position {index} has an invalid amount",
            details={"index": index, "field": "amount", "value": raw.get("amount")},
        )

    txn_id = raw.get("id")
    if txn_id is None or str(txn_id).strip() == "":
        txn_id = f"txn-{index}-{uuid.uuid4().hex[:8]}"

    data = {**raw, "id": str(txn_id), "description": description, "amount": amount}

    try:
        return Transaction.model_validate(data)
    except PydanticValidationError as e:
        raise ValidationError(
            f"Transaction at position {index} failed validation",
            details={"index": index, "errors": _error_messages(e)},
        )


def normalize_transactions(raw_transactions: Any) -> List[Transaction]:
    """
    Validate a whole request payload before it enters the pipeline.

    Raises:
        ValidationError: If the payload is not a non-empty list or any record is invalid
    """
    if not isinstance(raw_transactions, list) or not raw_transactions:
        raise ValidationError("Missing or invalid transactions array")

    transactions = [normalize_transaction(raw, i) for i, raw in enumerate(raw_transactions)]

    seen = set()
    for txn in transactions:
        if txn.id in seen:
            raise ValidationError(
                f"Duplicate transaction id: {txn.id}",
                details={"id": txn.id},
            )
        seen.add(txn.id)

    return transactions


def parse_user_profile(raw: Optional[Dict[str, Any]]) -> Optional[UserProfile]:
    """
    Parse an optional user profile dictionary.

    Raises:
        ValidationError: If the profile is present but malformed
    """
    if raw is None:
        return None
    try:
        return UserProfile.model_validate(raw)
    except PydanticValidationError as e:
        raise ValidationError(
            "Invalid user profile",
            details={"errors": _error_messages(e)},
        )
