"""
System and user prompts for batch tax classification.
Prompts are kept terse; every token is paid for on each batch.
"""
from typing import List, Optional

from core.schema import Transaction, UserProfile

REPLY_GRAMMAR = "<n>: d:<0|1>|c:<0.0-1.0>|r:<reason>|b:<0-100>"


def _clean_field(text: Optional[str]) -> str:
    """Remove characters that would break the one-line-per-transaction layout."""
    if not text:
        return ""
    return " ".join(text.replace("|", " ").split())


def build_system_prompt(profile: Optional[UserProfile] = None) -> str:
    """
    Build the system preamble: jurisdiction, business context, reply grammar.

    Args:
        profile: User profile (defaults to an individual in AU)

    Returns:
        Complete system prompt string
    """
    profile = profile or UserProfile()

    parts = [
        f"Tax expert {profile.country_code}.",
        f"Business: {profile.business_type}, {profile.occupation or 'General'}"
        + (f" ({profile.industry})." if profile.industry else "."),
    ]

    if profile.psychology:
        parts.append(
            f"User deduction rules (apply these over general guidance): {_clean_field(profile.psychology)}."
        )

    parts.append(
        "For each numbered transaction reply with exactly one line, no other text. "
        f"Format: {REPLY_GRAMMAR} "
        "where d=tax deductible, c=confidence, r=brief reason, b=business use percent."
    )

    return " ".join(parts)


def build_user_message(transactions: List[Transaction]) -> str:
    """
    Build the compact transaction list, one line per transaction, 1-indexed.

    Format per line: <index>:<description>|<amount>|<category-hint>

    Args:
        transactions: Transactions in batch order

    Returns:
        Formatted user message string
    """
    lines = []
    for i, txn in enumerate(transactions, 1):
        description = _clean_field(txn.description)
        if txn.merchant and txn.merchant.lower() not in description.lower():
            description = f"{description} ({_clean_field(txn.merchant)})"
        hint = _clean_field(txn.category) or "General"
        lines.append(f"{i}:{description}|{txn.amount:.2f}|{hint}")
    return "\n".join(lines)
