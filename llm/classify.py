"""
Batch transaction classification using the compact reply protocol.
Every call returns exactly one result per input transaction.
"""
from typing import List, Optional, Sequence

from core.exceptions import TransportError
from core.logger import setup_logger
from core.schema import ClassificationResult, Transaction, UserProfile, fallback_result
from core.stats import CostStatsTracker
from llm.client import LLMClient
from llm.codec import ResponseCodec
from llm.pricing import estimate_cost

logger = setup_logger(__name__)

TRANSPORT_FAILURE_REASONING = "AI analysis failed - manual review required"


class LLMBatchClassifier:
    """Issues one bounded LLM call per batch and decodes the reply."""

    def __init__(
        self,
        client: LLMClient,
        stats: Optional[CostStatsTracker] = None,
        codec: Optional[ResponseCodec] = None,
        max_batch_size: int = 50,
        max_token_cap: int = 800,
        tokens_per_item: int = 40,
    ):
        self.client = client
        self.stats = stats
        self.codec = codec or ResponseCodec()
        self.max_batch_size = max_batch_size
        self.max_token_cap = max_token_cap
        self.tokens_per_item = tokens_per_item

    def token_budget(self, batch_size: int) -> int:
        """Output token budget: min(cap, per-item estimate * batch size)."""
        return min(self.max_token_cap, self.tokens_per_item * max(1, batch_size))

    def classify_batch(
        self,
        transactions: Sequence[Transaction],
        user_profile: Optional[UserProfile] = None,
        request_stats: Optional[CostStatsTracker] = None,
    ) -> List[ClassificationResult]:
        """
        Classify transactions with the LLM.

        Inputs longer than max_batch_size are sent as consecutive calls.

        Args:
            transactions: Transactions needing AI resolution
            user_profile: Business context for the prompt
            request_stats: Extra tracker for per-request cost, besides the shared one

        Returns:
            Results with the same length and order as the input
        """
        if not transactions:
            return []

        results: List[ClassificationResult] = []
        for start in range(0, len(transactions), self.max_batch_size):
            chunk = list(transactions[start:start + self.max_batch_size])
            results.extend(self._classify_chunk(chunk, user_profile, request_stats))
        return results

    def _classify_chunk(
        self,
        transactions: List[Transaction],
        user_profile: Optional[UserProfile],
        request_stats: Optional[CostStatsTracker] = None,
    ) -> List[ClassificationResult]:
        trackers = [t for t in (self.stats, request_stats) if t is not None]
        logger.info(f"Classifying batch of {len(transactions)} transactions")

        system_prompt, user_message = self.codec.encode(transactions, user_profile)
        max_tokens = self.token_budget(len(transactions))

        try:
            completion = self.client.complete(system_prompt, user_message, max_tokens)
        except TransportError as e:
            logger.error(f"LLM error for batch: {e.message}")
            self._record_failure(trackers)
            return [self._transport_fallback(t) for t in transactions]
        except Exception as e:
            logger.error(f"Unexpected error in batch classification: {e}", exc_info=True)
            self._record_failure(trackers)
            return [self._transport_fallback(t) for t in transactions]

        cost = estimate_cost(completion.model, completion.input_tokens, completion.output_tokens)
        for tracker in trackers:
            tracker.record_llm_request(
                completion.input_tokens,
                completion.output_tokens,
                cost,
                completion.latency_ms,
            )

        results = self.codec.decode(completion.text, transactions)

        if len(results) != len(transactions):
            # decode() aligns by index; this only guards against future codec changes
            logger.error(f"Codec returned {len(results)} results for {len(transactions)} transactions")
            results = results[:len(transactions)] + [
                fallback_result(category=t.category) for t in transactions[len(results):]
            ]

        logger.info(f"Batch processed: {len(results)} results")
        return results

    @staticmethod
    def _record_failure(trackers: List[CostStatsTracker]) -> None:
        for tracker in trackers:
            tracker.record_llm_request(0, 0, 0.0, 0.0, success=False)

    @staticmethod
    def _transport_fallback(transaction: Transaction) -> ClassificationResult:
        return fallback_result(TRANSPORT_FAILURE_REASONING, category=transaction.category)
