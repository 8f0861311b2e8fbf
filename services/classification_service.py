"""
Hybrid classification pipeline.

Phase 1 looks transactions up in the cache, phase 2 tries reference rules on
the misses, phase 3 sends whatever is left to the LLM in paced batches.
Results always come back complete and in the caller's order.
"""
import asyncio
import time
from collections import Counter
from datetime import timedelta
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from core.cache import ClassificationCache
from core.config import Settings, get_settings
from core.db import CacheStore
from core.exceptions import ConfigurationError
from core.logger import setup_logger, shorten
from core.matching import ReferenceMatcher, is_recurring_bill
from core.schema import (
    BatchProcessingResult,
    ClassificationResult,
    ClassificationSource,
    ClassifiedTransaction,
    CostBreakdown,
    Insights,
    ProcessingOptions,
    Transaction,
    UserProfile,
    fallback_result,
)
from core.stats import CostStatsTracker
from llm.classify import LLMBatchClassifier
from llm.client import LLMClient
from services.cost_report import build_cost_analysis, build_pattern_analysis
from services.pacing import BatchPacer

logger = setup_logger(__name__)

CANCELLED_REASONING = "request cancelled before classification"
TIMEOUT_REASONING = "AI analysis timed out - manual review required"
UNAVAILABLE_REASONING = "AI classification unavailable - manual review required"

NEEDS_REVIEW_CONFIDENCE = 0.5


class ClassifierServices:
    """Process-wide shared state handed to every orchestrator."""

    def __init__(
        self,
        cache: ClassificationCache,
        stats: CostStatsTracker,
        matcher: ReferenceMatcher,
    ):
        self.cache = cache
        self.stats = stats
        self.matcher = matcher

    @classmethod
    def from_settings(cls, settings: Settings) -> "ClassifierServices":
        """Build shared services, warming the cache from the durable store."""
        store = CacheStore(settings.cache_database_path) if settings.cache_database_path else None
        cache = ClassificationCache(
            store=store,
            admission_threshold=settings.cache_admission_threshold,
            bucket_breakpoint=settings.amount_bucket_breakpoint,
            small_bucket_width=settings.small_amount_bucket_width,
            large_bucket_width=settings.large_amount_bucket_width,
        )
        cache.warm()
        matcher = ReferenceMatcher(fuzzy_threshold=settings.fuzzy_match_threshold)
        return cls(cache=cache, stats=CostStatsTracker(), matcher=matcher)


class ClassificationOrchestrator:
    """Routes each transaction through cache, reference rules and the LLM."""

    def __init__(
        self,
        services: ClassifierServices,
        classifier: Optional[LLMBatchClassifier] = None,
        settings: Optional[Settings] = None,
        pacer_factory: Optional[Callable[[], BatchPacer]] = None,
    ):
        self.services = services
        self.classifier = classifier
        self.settings = settings or get_settings()
        self.pacer_factory = pacer_factory or (
            lambda: BatchPacer(self.settings.batch_pacing_seconds)
        )

    @property
    def cache(self) -> ClassificationCache:
        return self.services.cache

    @property
    def stats(self) -> CostStatsTracker:
        return self.services.stats

    async def process_batch(
        self,
        transactions: Sequence[Transaction],
        options: Optional[ProcessingOptions] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> BatchProcessingResult:
        """
        Classify a list of transactions.

        Args:
            transactions: Validated transactions
            options: Batch size, acceptance threshold, cost-optimization toggle, profile
            cancel_event: Checked before each batch dispatch

        Returns:
            BatchProcessingResult with one entry per transaction, in input order
        """
        started = time.monotonic()
        options = options or ProcessingOptions(batch_size=self.settings.batch_size)
        threshold = (
            options.confidence_threshold
            if options.confidence_threshold is not None
            else self.settings.reference_acceptance_threshold
        )

        total = len(transactions)
        resolved: List[Optional[ClassificationResult]] = [None] * total
        signatures = [self.cache.signature(t.description, t.amount, t.merchant) for t in transactions]

        logger.info(f"Processing {total} transactions (batch size {options.batch_size})")

        loop = asyncio.get_running_loop()

        if options.enable_cost_optimization:
            # Phases 1 and 2: cache, then reference rules (blocking store I/O)
            await loop.run_in_executor(
                None, self._resolve_locally, transactions, signatures, resolved, threshold
            )

        # Phase 3: LLM for the remainder
        pending = [i for i in range(total) if resolved[i] is None]
        request_stats = CostStatsTracker()
        cancelled = False
        if pending:
            logger.info(f"{total - len(pending)} resolved without AI, {len(pending)} need AI")
            cancelled = await self._resolve_with_ai(
                transactions, pending, resolved, options, cancel_event, request_stats
            )

        written = [
            (signatures[i], resolved[i]) for i in pending
            if resolved[i] is not None and resolved[i].source == ClassificationSource.AI
        ]
        if written:
            await loop.run_in_executor(None, self._write_back, written)

        final: List[ClassificationResult] = [
            r if r is not None else fallback_result(category=transactions[i].category)
            for i, r in enumerate(resolved)
        ]

        counts = Counter(r.source for r in final)
        self.stats.record_cache_hit(counts[ClassificationSource.CACHE])
        self.stats.record_reference_hit(counts[ClassificationSource.REFERENCE])
        self.stats.record_ai_result(counts[ClassificationSource.AI])
        self.stats.record_fallback(counts[ClassificationSource.FALLBACK])

        elapsed_ms = (time.monotonic() - started) * 1000
        self.stats.record_processing_time(elapsed_ms)

        ai_cost = request_stats.snapshot().total_cost
        results = [
            ClassifiedTransaction(
                transaction_id=txn.id,
                description=txn.description,
                amount=txn.amount,
                classification=final[i],
            )
            for i, txn in enumerate(transactions)
        ]

        logger.info(
            f"Batch processing complete: {total} results "
            f"({counts[ClassificationSource.CACHE]} cache, "
            f"{counts[ClassificationSource.REFERENCE]} reference, "
            f"{counts[ClassificationSource.AI]} AI, "
            f"{counts[ClassificationSource.FALLBACK]} fallback)"
        )

        return BatchProcessingResult(
            results=results,
            total_transactions=total,
            processed_with_cache=counts[ClassificationSource.CACHE],
            processed_with_reference_data=counts[ClassificationSource.REFERENCE],
            processed_with_ai=counts[ClassificationSource.AI],
            fallback_count=counts[ClassificationSource.FALLBACK],
            total_cost=ai_cost,
            processing_time_ms=int(elapsed_ms),
            cost_breakdown=self.build_cost_breakdown(counts, total, ai_cost),
            insights=build_insights(results),
            cancelled=cancelled,
        )

    async def classify_single(
        self,
        transaction: Transaction,
        user_profile: Optional[UserProfile] = None,
    ) -> ClassifiedTransaction:
        """Run the pipeline for one transaction."""
        options = ProcessingOptions(batch_size=1, user_profile=user_profile)
        result = await self.process_batch([transaction], options)
        return result.results[0]

    def _resolve_locally(
        self,
        transactions: Sequence[Transaction],
        signatures: List[str],
        resolved: List[Optional[ClassificationResult]],
        threshold: float,
    ) -> None:
        """Fill resolved positions from the cache, then from reference rules."""
        for i in range(len(transactions)):
            cached = self.cache.get(signatures[i])
            if cached is not None:
                resolved[i] = cached

        for i, txn in enumerate(transactions):
            if resolved[i] is not None:
                continue
            reference = self.services.matcher.classify(txn.description, txn.amount, txn.merchant)
            if reference is not None and reference.confidence >= threshold:
                resolved[i] = reference

    def _write_back(self, entries: List[Tuple[str, ClassificationResult]]) -> None:
        for signature, result in entries:
            self.cache.put(signature, result)

    async def _resolve_with_ai(
        self,
        transactions: Sequence[Transaction],
        pending: List[int],
        resolved: List[Optional[ClassificationResult]],
        options: ProcessingOptions,
        cancel_event: Optional[asyncio.Event],
        request_stats: CostStatsTracker,
    ) -> bool:
        """
        Resolve pending positions in paced, strictly sequential batches.

        Returns:
            True if the request was cancelled before all batches were sent
        """
        if self.classifier is None:
            logger.warning(f"No LLM classifier configured; {len(pending)} transactions fall back")
            for i in pending:
                resolved[i] = fallback_result(UNAVAILABLE_REASONING, category=transactions[i].category)
            return False

        # One preamble per batch, so batches never mix profiles
        groups: Dict[UserProfile, List[int]] = {}
        for i in pending:
            profile = transactions[i].user_profile or options.user_profile or UserProfile(
                country_code=self.settings.default_country_code
            )
            groups.setdefault(profile, []).append(i)

        batches = []
        for profile, indices in groups.items():
            for start in range(0, len(indices), options.batch_size):
                batches.append((profile, indices[start:start + options.batch_size]))

        pacer = self.pacer_factory()
        loop = asyncio.get_running_loop()

        for number, (profile, chunk) in enumerate(batches, 1):
            if cancel_event is not None and cancel_event.is_set():
                return self._cancel_remaining(transactions, batches[number - 1:], resolved)

            await pacer.wait()

            if cancel_event is not None and cancel_event.is_set():
                return self._cancel_remaining(transactions, batches[number - 1:], resolved)

            batch = [transactions[i] for i in chunk]
            logger.info(f"Dispatching AI batch {number}/{len(batches)} ({len(batch)} transactions)")

            try:
                results = await asyncio.wait_for(
                    loop.run_in_executor(
                        None,
                        lambda: self.classifier.classify_batch(batch, profile, request_stats=request_stats),
                    ),
                    timeout=self.settings.batch_timeout_seconds,
                )
            except asyncio.TimeoutError:
                logger.error(
                    f"AI batch {number} exceeded {self.settings.batch_timeout_seconds}s, falling back"
                )
                results = [fallback_result(TIMEOUT_REASONING, category=t.category) for t in batch]

            for i, result in zip(chunk, align_results(results, batch)):
                resolved[i] = result

        return False

    def _cancel_remaining(self, transactions, remaining_batches, resolved) -> bool:
        count = 0
        for _, chunk in remaining_batches:
            for i in chunk:
                resolved[i] = fallback_result(CANCELLED_REASONING, category=transactions[i].category)
                count += 1
        logger.warning(f"Request cancelled; {count} transactions not sent to AI")
        return True

    def build_cost_breakdown(self, counts: Counter, total: int, ai_cost: float) -> CostBreakdown:
        """Cost summary for one request."""
        if total == 0:
            return CostBreakdown()
        zero_cost = counts[ClassificationSource.CACHE] + counts[ClassificationSource.REFERENCE]
        zero_cost_pct = zero_cost / total * 100
        without_optimization = total * self.settings.estimated_ai_cost_per_transaction
        return CostBreakdown(
            ai_cost=ai_cost,
            cost_per_transaction=ai_cost / total,
            estimated_cost_without_optimization=without_optimization,
            estimated_savings=max(0.0, without_optimization - ai_cost),
            zero_cost_percentage=round(zero_cost_pct, 1),
            efficiency_rating=efficiency_rating(zero_cost_pct),
        )

    def cost_analysis(self) -> Dict:
        """Process-wide cost report with recommendations."""
        return build_cost_analysis(
            self.stats.snapshot(),
            self.cache.stats(),
            self.services.matcher.coverage_stats(),
            self.settings.estimated_ai_cost_per_transaction,
        )

    def pattern_analysis(self) -> Dict:
        """Cache efficiency and reference coverage report."""
        return build_pattern_analysis(self.cache.stats(), self.services.matcher.coverage_stats())

    def reset_stats(self) -> None:
        self.stats.reset()
        logger.info("Processing statistics reset")

    def evict_cache(self, max_age_days: float) -> int:
        return self.cache.evict_older_than(timedelta(days=max_age_days))


def align_results(
    results: Sequence[ClassificationResult],
    batch: Sequence[Transaction],
) -> List[ClassificationResult]:
    """Force a result list to the batch length, filling gaps with FALLBACK."""
    aligned = list(results[:len(batch)])
    if len(aligned) < len(batch):
        logger.warning(f"Classifier returned {len(results)} results for {len(batch)} transactions")
        aligned.extend(fallback_result(category=t.category) for t in batch[len(aligned):])
    return aligned


def efficiency_rating(zero_cost_percentage: float) -> str:
    if zero_cost_percentage >= 80:
        return "excellent"
    if zero_cost_percentage >= 60:
        return "good"
    if zero_cost_percentage >= 40:
        return "fair"
    return "poor"


def build_insights(results: Sequence[ClassifiedTransaction]) -> Insights:
    """Aggregate categories, confidence, deductible totals and recurring bills."""
    if not results:
        return Insights()

    categories = Counter(r.classification.category for r in results)
    confidences = [r.classification.confidence for r in results]

    deductible = [r for r in results if r.classification.is_tax_deductible]
    deductible_amount = sum(
        abs(r.amount) * r.classification.business_use_percentage / 100
        for r in deductible
        if r.amount < 0
    )
    debits = [r for r in results if r.amount < 0]
    business_debits = [r for r in debits if r.classification.is_tax_deductible]

    needs_review = sum(
        1 for r in results
        if r.classification.source == ClassificationSource.FALLBACK
        or r.classification.confidence < NEEDS_REVIEW_CONFIDENCE
    )

    for r in results:
        if r.classification.source == ClassificationSource.FALLBACK:
            logger.debug(f"Needs review: '{shorten(r.description)}' ({r.classification.reasoning})")

    return Insights(
        top_categories=[
            {"category": name, "count": count} for name, count in categories.most_common(5)
        ],
        average_confidence=round(sum(confidences) / len(confidences), 4),
        deductible_count=len(deductible),
        tax_deductible_amount=round(deductible_amount, 2),
        needs_review_count=needs_review,
        recurring_bills=sum(1 for r in results if is_recurring_bill(r.description, r.amount)),
        business_expense_percentage=(
            round(len(business_debits) / len(debits) * 100, 1) if debits else 0.0
        ),
    )


def build_orchestrator(settings: Optional[Settings] = None) -> ClassificationOrchestrator:
    """
    Wire the production pipeline from settings.

    Without an API key the orchestrator still runs; unresolved transactions
    fall back instead of reaching the LLM.
    """
    settings = settings or get_settings()
    services = ClassifierServices.from_settings(settings)

    classifier = None
    try:
        client = LLMClient(settings)
        classifier = LLMBatchClassifier(
            client,
            stats=services.stats,
            max_batch_size=settings.max_batch_size,
            max_token_cap=settings.max_token_cap,
            tokens_per_item=settings.tokens_per_item,
        )
    except ConfigurationError as e:
        logger.warning(f"LLM disabled: {e.message}")

    return ClassificationOrchestrator(services, classifier, settings)
