"""
Hand-authored reference rules for zero-cost classification.

Rules are evaluated in order; on equal scores the earlier rule wins.
Context-sensitive categories (rideshare, meals, groceries) carry a confidence
ceiling below the default acceptance threshold so the LLM can apply the
user's own deduction rules.
"""
from dataclasses import dataclass
from typing import Tuple


@dataclass(frozen=True)
class ReferenceRule:
    """A single merchant/keyword pattern."""
    name: str
    category: str
    tax_category: str
    is_tax_deductible: bool
    business_use_percentage: int
    keywords: Tuple[str, ...] = ()
    merchants: Tuple[str, ...] = ()
    confidence_floor: float = 0.8
    confidence_ceiling: float = 0.95
    direction: str = "debit"


BUSINESS_EXPENSE = "Business Expense"
PERSONAL = "Personal"
INCOME = "Income"


REFERENCE_RULES: Tuple[ReferenceRule, ...] = (
    ReferenceRule(
        name="parking_tolls",
        category="Vehicle & Transport",
        tax_category=BUSINESS_EXPENSE,
        is_tax_deductible=True,
        business_use_percentage=100,
        keywords=("parking", "car park", "toll", "linkt", "citylink", "eastlink"),
        merchants=("wilson parking", "secure parking", "care park", "linkt"),
        confidence_floor=0.82,
        confidence_ceiling=0.95,
    ),
    ReferenceRule(
        name="fuel",
        category="Vehicle & Transport",
        tax_category=BUSINESS_EXPENSE,
        is_tax_deductible=True,
        business_use_percentage=75,
        keywords=("fuel", "petrol", "service station", "diesel"),
        merchants=("bp", "shell", "caltex", "ampol", "7-eleven fuel", "united petroleum"),
        confidence_floor=0.8,
        confidence_ceiling=0.9,
    ),
    ReferenceRule(
        name="software_subscriptions",
        category="Software & Technology",
        tax_category=BUSINESS_EXPENSE,
        is_tax_deductible=True,
        business_use_percentage=100,
        keywords=("software", "subscription", "saas", "license", "licence"),
        merchants=(
            "adobe", "microsoft", "github", "dropbox", "slack", "zoom", "atlassian",
            "jetbrains", "google workspace", "notion", "figma",
        ),
        confidence_floor=0.8,
        confidence_ceiling=0.95,
    ),
    ReferenceRule(
        name="cloud_hosting",
        category="Software & Technology",
        tax_category=BUSINESS_EXPENSE,
        is_tax_deductible=True,
        business_use_percentage=100,
        keywords=("hosting", "cloud", "domain", "server"),
        merchants=("aws", "amazon web services", "digitalocean", "heroku", "vercel", "godaddy"),
        confidence_floor=0.8,
        confidence_ceiling=0.95,
    ),
    ReferenceRule(
        name="phone_internet",
        category="Phone & Internet",
        tax_category=BUSINESS_EXPENSE,
        is_tax_deductible=True,
        business_use_percentage=50,
        keywords=("mobile", "internet", "broadband", "nbn", "phone bill"),
        merchants=("telstra", "optus", "vodafone", "tpg", "aussie broadband", "iinet"),
        confidence_floor=0.8,
        confidence_ceiling=0.9,
    ),
    ReferenceRule(
        name="utilities",
        category="Utilities",
        tax_category=PERSONAL,
        is_tax_deductible=False,
        business_use_percentage=0,
        keywords=("electricity", "gas bill", "water", "energy"),
        merchants=("origin energy", "agl", "energyaustralia", "red energy", "alinta"),
        confidence_floor=0.8,
        confidence_ceiling=0.88,
    ),
    ReferenceRule(
        name="office_supplies",
        category="Office Supplies",
        tax_category=BUSINESS_EXPENSE,
        is_tax_deductible=True,
        business_use_percentage=100,
        keywords=("stationery", "office supplies", "printer", "toner"),
        merchants=("officeworks", "staples"),
        confidence_floor=0.8,
        confidence_ceiling=0.92,
    ),
    ReferenceRule(
        name="professional_services",
        category="Professional Services",
        tax_category=BUSINESS_EXPENSE,
        is_tax_deductible=True,
        business_use_percentage=100,
        keywords=("accountant", "accounting", "bookkeeping", "legal fees", "tax agent"),
        merchants=("h&r block", "xero", "myob", "quickbooks"),
        confidence_floor=0.8,
        confidence_ceiling=0.92,
    ),
    ReferenceRule(
        name="bank_fees",
        category="Bank Fees",
        tax_category=BUSINESS_EXPENSE,
        is_tax_deductible=True,
        business_use_percentage=50,
        keywords=("account fee", "monthly fee", "overdrawn", "international transaction fee"),
        confidence_floor=0.8,
        confidence_ceiling=0.88,
    ),
    ReferenceRule(
        name="groceries",
        category="Groceries",
        tax_category=PERSONAL,
        is_tax_deductible=False,
        business_use_percentage=0,
        keywords=("grocery", "supermarket"),
        merchants=("woolworths", "coles", "aldi", "iga"),
        confidence_floor=0.82,
        confidence_ceiling=0.92,
    ),
    ReferenceRule(
        name="rideshare",
        category="Vehicle & Transport",
        tax_category=PERSONAL,
        is_tax_deductible=False,
        business_use_percentage=0,
        keywords=("rideshare", "taxi", "trip"),
        merchants=("uber", "didi", "ola", "13cabs"),
        confidence_floor=0.55,
        confidence_ceiling=0.7,
    ),
    ReferenceRule(
        name="meals",
        category="Meals & Entertainment",
        tax_category=PERSONAL,
        is_tax_deductible=False,
        business_use_percentage=0,
        keywords=("restaurant", "cafe", "coffee", "takeaway"),
        merchants=("mcdonalds", "uber eats", "menulog", "doordash", "starbucks"),
        confidence_floor=0.55,
        confidence_ceiling=0.7,
    ),
    ReferenceRule(
        name="salary",
        category="Income",
        tax_category=INCOME,
        is_tax_deductible=False,
        business_use_percentage=0,
        keywords=("salary", "payroll", "wages", "pay run"),
        confidence_floor=0.82,
        confidence_ceiling=0.95,
        direction="credit",
    ),
    ReferenceRule(
        name="transfers",
        category="Transfer",
        tax_category=PERSONAL,
        is_tax_deductible=False,
        business_use_percentage=0,
        keywords=("transfer to", "transfer from", "internal transfer", "osko", "bpay"),
        confidence_floor=0.8,
        confidence_ceiling=0.9,
        direction="any",
    ),
)
