"""
Classification cache keyed by normalized transaction signatures.

Entries live in memory and are mirrored to an optional durable store.
A failing store degrades to an always-miss/skip-write backend; the
pipeline keeps working from memory.
"""
import threading
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from core.db import CacheStore
from core.exceptions import CacheUnavailable
from core.logger import setup_logger
from core.normalize import build_signature
from core.schema import CacheEntry, ClassificationResult, ClassificationSource

logger = setup_logger(__name__)


class ClassificationCache:
    """Thread-safe memo of prior classification results."""

    def __init__(
        self,
        store: Optional[CacheStore] = None,
        admission_threshold: float = 0.3,
        bucket_breakpoint: float = 100.0,
        small_bucket_width: float = 1.0,
        large_bucket_width: float = 10.0,
    ):
        self.store = store
        self.admission_threshold = admission_threshold
        self.bucket_breakpoint = bucket_breakpoint
        self.small_bucket_width = small_bucket_width
        self.large_bucket_width = large_bucket_width

        self._entries: Dict[str, CacheEntry] = {}
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0
        self.store_errors = 0
        self._warm = False

    def signature(self, description: str, amount: float, merchant: Optional[str] = None) -> str:
        """Build the normalized key for a transaction."""
        return build_signature(
            description,
            amount,
            merchant,
            breakpoint=self.bucket_breakpoint,
            small_width=self.small_bucket_width,
            large_width=self.large_bucket_width,
        )

    def warm(self) -> int:
        """
        Load the durable store into memory.

        Returns:
            Number of entries loaded (0 when the store is unavailable)
        """
        if self.store is None:
            return 0
        try:
            self.store.init_db()
            entries = self.store.load_entries()
        except CacheUnavailable as e:
            self._note_store_error("warm", e)
            return 0

        with self._lock:
            for entry in entries:
                self._entries.setdefault(entry.signature, entry)
            self._warm = True
        logger.info(f"Loaded {len(entries)} cached classifications")
        return len(entries)

    def get(self, signature: str) -> Optional[ClassificationResult]:
        """
        Look up a cached classification.

        Memory is checked first; the store is only queried before warm()
        has loaded it.

        Args:
            signature: Normalized transaction signature

        Returns:
            Cached result re-tagged as CACHE, or None on a miss
        """
        with self._lock:
            entry = self._entries.get(signature)

        # A warm cache already holds every stored entry
        if entry is None and self.store is not None and not self._warm:
            try:
                entry = self.store.get_entry(signature)
            except CacheUnavailable as e:
                self._note_store_error("get", e)
                entry = None
            if entry is not None:
                with self._lock:
                    entry = self._entries.setdefault(signature, entry)

        with self._lock:
            if entry is None:
                self.misses += 1
                return None
            entry.usage_count += 1
            self.hits += 1
            result = entry.result

        if self.store is not None:
            try:
                self.store.increment_usage(signature)
            except CacheUnavailable as e:
                self._note_store_error("increment_usage", e)

        return result.with_source(ClassificationSource.CACHE)

    def put(self, signature: str, result: ClassificationResult) -> bool:
        """
        Store a classification if it clears the admission threshold.

        Args:
            signature: Normalized transaction signature
            result: Classification to remember

        Returns:
            True if the result was admitted
        """
        if result.source == ClassificationSource.FALLBACK:
            return False
        if result.confidence < self.admission_threshold:
            logger.debug(
                f"Not caching {signature}: confidence {result.confidence:.2f} "
                f"below {self.admission_threshold:.2f}"
            )
            return False

        now = datetime.now(timezone.utc)
        with self._lock:
            existing = self._entries.get(signature)
            entry = CacheEntry(
                signature=signature,
                result=result,
                last_updated=now,
                usage_count=existing.usage_count if existing else 0,
            )
            self._entries[signature] = entry

        if self.store is not None:
            try:
                self.store.upsert_entry(entry)
            except CacheUnavailable as e:
                self._note_store_error("put", e)

        return True

    def evict_older_than(self, max_age: timedelta) -> int:
        """
        Remove entries not updated within max_age.

        Returns:
            Number of in-memory entries evicted
        """
        cutoff = datetime.now(timezone.utc) - max_age
        with self._lock:
            stale = [sig for sig, entry in self._entries.items() if entry.last_updated < cutoff]
            for sig in stale:
                del self._entries[sig]

        if self.store is not None:
            try:
                self.store.delete_older_than(cutoff)
            except CacheUnavailable as e:
                self._note_store_error("evict", e)

        if stale:
            logger.info(f"Evicted {len(stale)} cache entries older than {max_age}")
        return len(stale)

    def entry(self, signature: str) -> Optional[CacheEntry]:
        """Return the raw in-memory entry (without counting a hit)."""
        with self._lock:
            entry = self._entries.get(signature)
            return entry.model_copy() if entry else None

    def stats(self) -> Dict[str, Any]:
        with self._lock:
            lookups = self.hits + self.misses
            return {
                "size": len(self._entries),
                "hits": self.hits,
                "misses": self.misses,
                "hit_rate": (self.hits / lookups) if lookups else 0.0,
                "store_errors": self.store_errors,
            }

    def _note_store_error(self, operation: str, error: CacheUnavailable) -> None:
        with self._lock:
            self.store_errors += 1
        logger.warning(f"Cache store unavailable during {operation}, continuing in memory: {error.message}")
