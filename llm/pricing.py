"""
Token pricing for cost accounting.
"""
from typing import Optional

# model_prefix -> (input_cost_per_token, output_cost_per_token), USD
AI_PRICING = {
    "gpt-4o-mini": (0.00000015, 0.0000006),
    "gpt-4o": (0.0000025, 0.00001),
    "gpt-4.1-mini": (0.0000004, 0.0000016),
    "gpt-4.1": (0.000002, 0.000008),
    "gpt-4-turbo": (0.00001, 0.00003),
    "gpt-3.5-turbo": (0.0000005, 0.0000015),
    "gpt-5-mini": (0.00000025, 0.000002),
    "gpt-5": (0.00000125, 0.00001),
}


def estimate_tokens(text: Optional[str]) -> int:
    """Rough token count when the provider does not report usage (~4 chars/token)."""
    if not text:
        return 0
    return (len(text) + 3) // 4


def estimate_cost(model_name: str, input_tokens: int, output_tokens: int) -> float:
    """Calculate estimated cost in USD based on model pricing."""
    model = (model_name or "").lower()
    # Longest prefix wins so gpt-4o-mini is not priced as gpt-4o
    best_match = None
    best_len = 0
    for prefix, pricing in AI_PRICING.items():
        if model.startswith(prefix) and len(prefix) > best_len:
            best_match = pricing
            best_len = len(prefix)

    if not best_match:
        return 0.0

    input_cost, output_cost = best_match
    return (input_tokens * input_cost) + (output_tokens * output_cost)
