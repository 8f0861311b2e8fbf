"""
Compact reply codec for batch classification.

Encodes a batch into (system prompt, user message) and decodes the model's
line-oriented reply back into one result per transaction. Decoding never
raises: each index resolves independently to Decoded or Unparseable, and
Unparseable entries become FALLBACK results.

Canonical reply grammar (one line per transaction):
    <index>: d:<0|1>|c:<0.0-1.0>|r:<free text>|b:<0-100>
"""
import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple, Union

from core.exceptions import ParseError
from core.logger import setup_logger, shorten
from core.schema import (
    ClassificationResult,
    ClassificationSource,
    Transaction,
    UserProfile,
    fallback_result,
)
from llm.prompts import build_system_prompt, build_user_message

logger = setup_logger(__name__)

KNOWN_KEYS = ("d", "c", "r", "b")

DEFAULT_CONFIDENCE = 0.5
DEFAULT_REASONING = "AI analysis completed"
UNPARSEABLE_REASONING = "could not parse response"

_NUMBER = re.compile(r"-?(?:\d+(?:\.\d+)?|\.\d+)")
_TRUE_VALUES = {"1", "true", "yes", "y"}


@dataclass(frozen=True)
class Decoded:
    """A reply line that yielded at least one known field."""
    index: int
    fields: Dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class Unparseable:
    """No usable reply line for this index."""
    index: int
    reason: str
    line: Optional[str] = None

    def as_error(self) -> ParseError:
        return ParseError(
            f"Reply entry {self.index} unparseable: {self.reason}",
            details={"index": self.index, "line": self.line},
        )


LineDecode = Union[Decoded, Unparseable]


def strip_code_fences(reply: str) -> str:
    """Drop markdown fences the model sometimes wraps its answer in."""
    lines = [line for line in reply.splitlines() if not line.strip().startswith("```")]
    return "\n".join(lines)


def parse_number(value: str) -> Optional[float]:
    """Leading numeric token of a value ("85%", " 0.9 ", "1.7x")."""
    match = _NUMBER.search(value or "")
    if not match:
        return None
    try:
        return float(match.group(0))
    except ValueError:
        return None


def parse_payload(payload: str) -> Dict[str, str]:
    """
    Split a reply payload into known key/value fields.

    Segments are separated by '|' and split on their first ':'.
    Unknown keys are ignored.
    """
    fields: Dict[str, str] = {}
    for segment in payload.split("|"):
        if ":" not in segment:
            continue
        key, value = segment.split(":", 1)
        key = key.strip().strip("*").strip().lower()
        if key in KNOWN_KEYS and key not in fields:
            fields[key] = value.strip()
    return fields


class ResponseCodec:
    """Encoder/decoder for the compact batch protocol."""

    def encode(
        self,
        transactions: Sequence[Transaction],
        profile: Optional[UserProfile] = None,
    ) -> Tuple[str, str]:
        """
        Build prompts for a batch.

        Returns:
            (system_prompt, user_message)
        """
        return build_system_prompt(profile), build_user_message(list(transactions))

    def find_lines(self, reply: str, count: int) -> Dict[int, Tuple[str, str]]:
        """
        Locate the reply line for each expected index.

        Exact prefix matches ("3:") are claimed first; indexes still missing
        then try a looser match ("3 :", "**3:**", "Item 3:") among unclaimed lines.

        Returns:
            index -> (full line, payload after the index marker)
        """
        lines = [line.strip() for line in strip_code_fences(reply or "").splitlines() if line.strip()]
        found: Dict[int, Tuple[str, str]] = {}
        claimed = set()

        for i in range(1, count + 1):
            prefix = f"{i}:"
            for pos, line in enumerate(lines):
                if pos not in claimed and line.startswith(prefix):
                    found[i] = (line, line[len(prefix):])
                    claimed.add(pos)
                    break

        for i in range(1, count + 1):
            if i in found:
                continue
            # The index must lead the line; "2:" inside another entry's reason is not a marker
            loose = re.compile(rf"^\W*(?:item\s*)?{i}\s*\**\s*:", re.IGNORECASE)
            for pos, line in enumerate(lines):
                if pos in claimed:
                    continue
                match = loose.match(line)
                if match:
                    found[i] = (line, line[match.end():])
                    claimed.add(pos)
                    break

        return found

    def decode_lines(self, reply: str, count: int) -> List[LineDecode]:
        """
        Decode a reply into one tagged variant per expected index (1..count).
        """
        found = self.find_lines(reply, count)
        decoded: List[LineDecode] = []
        for i in range(1, count + 1):
            if i not in found:
                decoded.append(Unparseable(index=i, reason="no reply line"))
                continue
            line, payload = found[i]
            fields = parse_payload(payload)
            if not fields:
                decoded.append(Unparseable(index=i, reason="no recognised fields", line=line))
                continue
            decoded.append(Decoded(index=i, fields=fields))
        return decoded

    def to_result(self, entry: LineDecode, transaction: Transaction) -> ClassificationResult:
        """Turn one decoded entry into a ClassificationResult."""
        if isinstance(entry, Unparseable):
            return fallback_result(UNPARSEABLE_REASONING, category=transaction.category)

        fields = entry.fields

        is_deductible = fields.get("d", "").strip().lower() in _TRUE_VALUES

        confidence = parse_number(fields.get("c", ""))
        if confidence is None:
            confidence = DEFAULT_CONFIDENCE

        business_use = parse_number(fields.get("b", ""))
        if business_use is None:
            business_use = 0

        reasoning = fields.get("r") or DEFAULT_REASONING

        return ClassificationResult(
            category=transaction.category or "General",
            is_tax_deductible=is_deductible,
            business_use_percentage=business_use,
            confidence=confidence,
            reasoning=reasoning,
            tax_category="Business Expense" if is_deductible else "Personal",
            source=ClassificationSource.AI,
        )

    def decode(self, reply: str, transactions: Sequence[Transaction]) -> List[ClassificationResult]:
        """
        Decode a full reply into exactly len(transactions) results.

        Args:
            reply: Raw model output
            transactions: The batch, in the order it was encoded

        Returns:
            Results aligned with the input; missing or malformed entries are FALLBACK
        """
        entries = self.decode_lines(reply, len(transactions))
        results = []
        for entry, txn in zip(entries, transactions):
            if isinstance(entry, Unparseable):
                error = entry.as_error()
                logger.warning(f"{error.message} (transaction '{shorten(txn.description)}')")
            results.append(self.to_result(entry, txn))
        return results
