"""
Pydantic schemas for transactions, classification results and batch reports.
Numeric fields coming back from the model are clamped, never rejected.
"""
import math
from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Dict, List, Optional

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, field_validator

MAX_REASONING_LENGTH = 300

FALLBACK_CONFIDENCE = 0.3
FALLBACK_TAX_CATEGORY = "Personal"


def clamp_confidence(v):
    """Clamp confidence into [0.0, 1.0]; unreadable values become 0.0."""
    try:
        value = float(v)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(value):
        return 0.0
    return max(0.0, min(1.0, value))


def clamp_business_use(v):
    """Clamp business-use percentage into [0, 100]."""
    try:
        value = float(v)
    except (TypeError, ValueError):
        return 0
    if math.isnan(value):
        return 0
    return int(max(0, min(100, round(value))))


def truncate_reasoning(v):
    """Keep reasoning text within the stored length."""
    if v is None:
        return ""
    text = " ".join(str(v).split())
    if len(text) > MAX_REASONING_LENGTH:
        return text[:MAX_REASONING_LENGTH - 3] + "..."
    return text


class ClassificationSource(str, Enum):
    """Which pipeline stage produced a result."""
    CACHE = "CACHE"
    REFERENCE = "REFERENCE"
    AI = "AI"
    FALLBACK = "FALLBACK"


class UserProfile(BaseModel):
    """Business context used in the prompt preamble."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    country_code: str = Field(default="AU", alias="countryCode")
    business_type: str = Field(default="INDIVIDUAL", alias="businessType")
    occupation: Optional[str] = None
    industry: Optional[str] = None
    psychology: Optional[str] = Field(default=None, alias="aiPsychology")

    @field_validator("country_code")
    @classmethod
    def upper_country(cls, v):
        return (v or "AU").strip().upper()


class Transaction(BaseModel):
    """Input transaction; never mutated by the pipeline."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str
    description: str
    amount: float
    merchant: Optional[str] = None
    date: Optional[datetime] = None
    category: Optional[str] = None
    user_notes: Optional[str] = Field(default=None, alias="userNotes")
    user_profile: Optional[UserProfile] = Field(default=None, alias="userProfile")

    @field_validator("description")
    @classmethod
    def description_not_blank(cls, v):
        if not v or not v.strip():
            raise ValueError("description must not be blank")
        return v.strip()

    @field_validator("amount")
    @classmethod
    def amount_is_finite(cls, v):
        if math.isnan(v) or math.isinf(v):
            raise ValueError("amount must be a finite number")
        return v

    @property
    def is_credit(self) -> bool:
        return self.amount > 0


class ClassificationResult(BaseModel):
    """Structured classification for a single transaction."""
    model_config = ConfigDict(frozen=True)

    category: str = "General"
    is_tax_deductible: bool = False
    business_use_percentage: Annotated[int, BeforeValidator(clamp_business_use)] = 0
    confidence: Annotated[float, BeforeValidator(clamp_confidence)] = 0.5
    reasoning: Annotated[str, BeforeValidator(truncate_reasoning)] = ""
    tax_category: str = FALLBACK_TAX_CATEGORY
    source: ClassificationSource = ClassificationSource.AI

    def with_source(self, source: ClassificationSource) -> "ClassificationResult":
        return self.model_copy(update={"source": source})


def fallback_result(
    reasoning: str = "could not parse response",
    category: Optional[str] = None,
) -> ClassificationResult:
    """
    Conservative default used whenever classification cannot be completed.

    Args:
        reasoning: Why the fallback was produced
        category: Category hint carried over from the transaction

    Returns:
        FALLBACK ClassificationResult with confidence 0.3
    """
    return ClassificationResult(
        category=category or "Uncategorised",
        is_tax_deductible=False,
        business_use_percentage=0,
        confidence=FALLBACK_CONFIDENCE,
        reasoning=reasoning,
        tax_category=FALLBACK_TAX_CATEGORY,
        source=ClassificationSource.FALLBACK,
    )


class CacheEntry(BaseModel):
    """Cached classification plus bookkeeping."""
    signature: str
    result: ClassificationResult
    last_updated: datetime
    usage_count: int = 0


class ProcessingOptions(BaseModel):
    """Per-request processing options."""
    model_config = ConfigDict(populate_by_name=True)

    batch_size: int = Field(default=50, ge=1, le=50, alias="batchSize")
    confidence_threshold: Optional[float] = Field(
        default=None, ge=0.0, le=1.0, alias="confidenceThreshold"
    )
    enable_cost_optimization: bool = Field(default=True, alias="enableCostOptimization")
    user_profile: Optional[UserProfile] = Field(default=None, alias="userProfile")


class ClassifiedTransaction(BaseModel):
    """One row of the batch output."""
    transaction_id: str
    description: str
    amount: float
    classification: ClassificationResult


class CostBreakdown(BaseModel):
    """Cost accounting for a single request."""
    ai_cost: float = 0.0
    cost_per_transaction: float = 0.0
    estimated_cost_without_optimization: float = 0.0
    estimated_savings: float = 0.0
    zero_cost_percentage: float = 0.0
    efficiency_rating: str = "poor"


class Insights(BaseModel):
    """Aggregates over the classified transactions."""
    top_categories: List[Dict[str, Any]] = Field(default_factory=list)
    average_confidence: float = 0.0
    deductible_count: int = 0
    tax_deductible_amount: float = 0.0
    needs_review_count: int = 0
    recurring_bills: int = 0
    business_expense_percentage: float = 0.0


class BatchProcessingResult(BaseModel):
    """Full response of a pipeline pass."""
    results: List[ClassifiedTransaction]
    total_transactions: int
    processed_with_cache: int = 0
    processed_with_reference_data: int = 0
    processed_with_ai: int = 0
    fallback_count: int = 0
    total_cost: float = 0.0
    processing_time_ms: int = 0
    cost_breakdown: CostBreakdown = Field(default_factory=CostBreakdown)
    insights: Insights = Field(default_factory=Insights)
    cancelled: bool = False
