"""
Shared fixtures: settings without pacing or disk cache, and a fake LLM client.
"""
import re
from typing import Callable, List, Optional

import pytest

from core.cache import ClassificationCache
from core.config import Settings
from core.matching import ReferenceMatcher
from core.schema import Transaction
from core.stats import CostStatsTracker
from llm.classify import LLMBatchClassifier
from llm.client import Completion
from services.classification_service import ClassificationOrchestrator, ClassifierServices

_LINE_INDEX = re.compile(r"^(\d+):")


def default_reply(user_message: str) -> str:
    """Answer every encoded line as deductible with confidence 0.8."""
    lines = []
    for line in user_message.splitlines():
        match = _LINE_INDEX.match(line)
        if match:
            lines.append(f"{match.group(1)}: d:1|c:0.8|r:Business expense|b:100")
    return "\n".join(lines)


class FakeLLMClient:
    """Records calls and answers from a callable, a queue of replies, or raises."""

    model = "gpt-4o-mini"

    def __init__(
        self,
        reply_fn: Optional[Callable[[str], str]] = None,
        replies: Optional[List[str]] = None,
        error: Optional[Exception] = None,
    ):
        self.reply_fn = reply_fn or default_reply
        self.replies = list(replies) if replies else None
        self.error = error
        self.calls = []

    def complete(self, system_prompt: str, user_message: str, max_tokens: int) -> Completion:
        self.calls.append({
            "system_prompt": system_prompt,
            "user_message": user_message,
            "max_tokens": max_tokens,
        })
        if self.error is not None:
            raise self.error
        text = self.replies.pop(0) if self.replies else self.reply_fn(user_message)
        return Completion(text=text, input_tokens=1000, output_tokens=200, latency_ms=12.0, model=self.model)


@pytest.fixture
def settings():
    return Settings(
        openai_api_key="test-key",
        batch_pacing_seconds=0,
        cache_database_path=None,
        _env_file=None,
    )


@pytest.fixture
def fake_client():
    return FakeLLMClient()


@pytest.fixture
def services(settings):
    cache = ClassificationCache(admission_threshold=settings.cache_admission_threshold)
    return ClassifierServices(cache=cache, stats=CostStatsTracker(), matcher=ReferenceMatcher())


@pytest.fixture
def make_orchestrator(services, settings):
    def _make(client=None, **overrides) -> ClassificationOrchestrator:
        run_settings = settings.model_copy(update=overrides) if overrides else settings
        classifier = None
        if client is not None:
            classifier = LLMBatchClassifier(
                client,
                stats=services.stats,
                max_batch_size=run_settings.max_batch_size,
                max_token_cap=run_settings.max_token_cap,
                tokens_per_item=run_settings.tokens_per_item,
            )
        return ClassificationOrchestrator(services, classifier, run_settings)
    return _make


def make_transaction(txn_id: str, description: str, amount: float, **kwargs) -> Transaction:
    return Transaction(id=txn_id, description=description, amount=amount, **kwargs)
