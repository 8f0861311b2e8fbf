"""
Deterministic reference-data matching for transactions.
Uses word-boundary keyword/merchant matching and Levenshtein similarity for
short merchant names.

The matcher holds no mutable state, so a single instance is shared by all
requests.
"""
import re
from functools import lru_cache
from typing import Any, Dict, Iterable, Optional, Tuple

import Levenshtein

from core.logger import setup_logger, shorten
from core.normalize import normalize_string
from core.reference_data import REFERENCE_RULES, ReferenceRule
from core.schema import ClassificationResult, ClassificationSource

logger = setup_logger(__name__)

# Confidence multiplier when the amount sign contradicts the rule direction
DIRECTION_MISMATCH_PENALTY = 0.85

# Income-leaning guess for unmatched credits, below the default acceptance threshold
UNMATCHED_CREDIT_CONFIDENCE = 0.4

# Fuzzy matching is only attempted for merchant names shorter than this
MAX_FUZZY_LENGTH = 20

# Words that mark a debit as a repeating bill
RECURRING_KEYWORDS = (
    "subscription", "monthly", "annual", "recurring", "auto", "bill", "plan", "direct debit",
)


@lru_cache(maxsize=1024)
def _pattern(fragment: str) -> "re.Pattern[str]":
    return re.compile(rf"(?<!\w){re.escape(fragment)}(?!\w)")


def contains_term(text: str, term: str) -> bool:
    """Whole-word containment check on normalized text."""
    if not text or not term:
        return False
    return _pattern(term).search(text) is not None


def is_recurring_bill(description: str, amount: float) -> bool:
    """Debit whose description reads like a subscription or regular bill."""
    if amount >= 0:
        return False
    text = normalize_string(description)
    return any(contains_term(text, keyword) for keyword in RECURRING_KEYWORDS)


def calculate_similarity(s1: str, s2: str) -> float:
    """
    Calculate Levenshtein similarity ratio between two strings.

    Args:
        s1: First string
        s2: Second string

    Returns:
        Similarity score (0.0 to 1.0)
    """
    if not s1 or not s2:
        return 0.0

    s1_norm = normalize_string(s1)
    s2_norm = normalize_string(s2)

    if not s1_norm or not s2_norm:
        return 0.0

    return Levenshtein.ratio(s1_norm, s2_norm)


class ReferenceMatcher:
    """Zero-cost classifier over an ordered set of pattern rules."""

    def __init__(
        self,
        rules: Iterable[ReferenceRule] = REFERENCE_RULES,
        fuzzy_threshold: float = 0.85,
    ):
        self.rules: Tuple[ReferenceRule, ...] = tuple(rules)
        self.fuzzy_threshold = fuzzy_threshold

    def score_rule(
        self,
        rule: ReferenceRule,
        description: str,
        merchant: str,
        amount: float,
    ) -> Tuple[float, str]:
        """
        Score one rule against normalized transaction text.

        Returns:
            (confidence, evidence) with confidence 0.0 when the rule does not fire
        """
        best = 0.0
        evidence = ""

        if rule.keywords:
            matched = [k for k in rule.keywords if contains_term(description, k)]
            if matched:
                fraction = len(matched) / len(rule.keywords)
                best = rule.confidence_floor + (rule.confidence_ceiling - rule.confidence_floor) * fraction
                evidence = f"keywords {', '.join(matched)}"

        for fragment in rule.merchants:
            if contains_term(merchant, fragment) or contains_term(description, fragment):
                if rule.confidence_ceiling > best:
                    best = rule.confidence_ceiling
                    evidence = f"merchant '{fragment}'"
                break
        else:
            if merchant and len(merchant) < MAX_FUZZY_LENGTH:
                for fragment in rule.merchants:
                    similarity = calculate_similarity(merchant, fragment)
                    if similarity >= self.fuzzy_threshold:
                        score = rule.confidence_ceiling * similarity
                        if score > best:
                            best = score
                            evidence = f"merchant similar to '{fragment}' ({similarity:.2f})"

        if best and rule.direction != "any":
            is_credit = amount > 0
            if (rule.direction == "credit") != is_credit:
                best *= DIRECTION_MISMATCH_PENALTY
                evidence += ", amount sign contradicts rule"

        return best, evidence

    def classify(
        self,
        description: str,
        amount: float,
        merchant: Optional[str] = None,
    ) -> Optional[ClassificationResult]:
        """
        Classify a transaction from reference rules alone.

        Args:
            description: Transaction description
            amount: Signed amount (positive = credit)
            merchant: Optional merchant name

        Returns:
            REFERENCE result, or None when no rule fires and the amount is a debit
        """
        description_norm = normalize_string(description)
        merchant_norm = normalize_string(merchant)

        best_rule: Optional[ReferenceRule] = None
        best_score = 0.0
        best_evidence = ""

        for rule in self.rules:
            score, evidence = self.score_rule(rule, description_norm, merchant_norm, amount)
            if score > best_score:
                best_rule, best_score, best_evidence = rule, score, evidence

        if best_rule is None:
            if amount > 0:
                return ClassificationResult(
                    category="Income",
                    is_tax_deductible=False,
                    business_use_percentage=0,
                    confidence=UNMATCHED_CREDIT_CONFIDENCE,
                    reasoning="Unmatched credit, likely income",
                    tax_category="Income",
                    source=ClassificationSource.REFERENCE,
                )
            return None

        logger.debug(
            f"Reference rule '{best_rule.name}' matched '{shorten(description)}' "
            f"(confidence={best_score:.2f})"
        )

        return ClassificationResult(
            category=best_rule.category,
            is_tax_deductible=best_rule.is_tax_deductible,
            business_use_percentage=best_rule.business_use_percentage,
            confidence=round(best_score, 4),
            reasoning=f"Reference rule {best_rule.name}: {best_evidence}",
            tax_category=best_rule.tax_category,
            source=ClassificationSource.REFERENCE,
        )

    def coverage_stats(self) -> Dict[str, Any]:
        """Count the patterns available for zero-cost matching."""
        merchant_patterns = sum(len(rule.merchants) for rule in self.rules)
        category_signatures = sum(len(rule.keywords) for rule in self.rules)
        return {
            "rules": len(self.rules),
            "merchant_patterns": merchant_patterns,
            "category_signatures": category_signatures,
            "total_patterns": merchant_patterns + category_signatures,
        }
