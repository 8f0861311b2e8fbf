"""
Process-wide cost analysis and optimization recommendations.
"""
from typing import Any, Dict, List

from core.stats import CostStats

LARGE_CACHE_SIZE = 8000


def build_recommendations(
    stats: CostStats,
    cache_stats: Dict[str, Any],
    coverage: Dict[str, Any],
    savings_percentage: float,
) -> List[Dict[str, str]]:
    """
    Suggest how to push more transactions onto zero-cost paths.

    Args:
        stats: Counter snapshot
        cache_stats: ClassificationCache.stats()
        coverage: ReferenceMatcher.coverage_stats()
        savings_percentage: Savings vs. sending every transaction to AI

    Returns:
        List of {type, message, priority}
    """
    recommendations = []

    if stats.total_processed and savings_percentage > 70:
        recommendations.append({
            "type": "performance",
            "message": "Excellent cost optimization achieved",
            "priority": "info",
        })

    if cache_stats.get("hits", 0) + cache_stats.get("misses", 0) > 0 and cache_stats.get("hit_rate", 0.0) < 0.5:
        recommendations.append({
            "type": "cache",
            "message": "Consider improving cache hit rate by adding more reference data",
            "priority": "medium",
        })

    if stats.ai_calls_made > stats.reference_hits:
        recommendations.append({
            "type": "reference_data",
            "message": "Add more merchant patterns to reduce AI processing costs",
            "priority": "high",
        })

    if stats.fallback_count and stats.total_processed and stats.fallback_count / stats.total_processed > 0.1:
        recommendations.append({
            "type": "reliability",
            "message": "More than 10% of transactions fell back; check LLM availability and reply format",
            "priority": "high",
        })

    if coverage.get("total_patterns", 0) < 50:
        recommendations.append({
            "type": "reference_data",
            "message": "Reference data has fewer than 50 patterns",
            "priority": "low",
        })

    return recommendations


def build_cost_analysis(
    stats: CostStats,
    cache_stats: Dict[str, Any],
    coverage: Dict[str, Any],
    estimated_ai_cost_per_transaction: float,
) -> Dict[str, Any]:
    """Assemble the cost dashboard payload."""
    total = stats.total_processed
    would_have_cost = total * estimated_ai_cost_per_transaction
    savings = max(0.0, would_have_cost - stats.total_cost)
    savings_percentage = (savings / would_have_cost * 100) if would_have_cost else 0.0

    def pct(part: int) -> int:
        return round(part / total * 100) if total else 0

    return {
        "overview": {
            "total_transactions_processed": total,
            "total_cost_spent": stats.total_cost,
            "estimated_savings": savings,
            "savings_percentage": round(savings_percentage),
            "average_cost_per_transaction": stats.total_cost / total if total else 0.0,
        },
        "breakdown": {
            "cache_classifications": stats.cache_hits,
            "reference_data_classifications": stats.reference_hits,
            "ai_classifications": stats.ai_calls_made,
            "fallback_classifications": stats.fallback_count,
            "llm_requests": stats.llm_requests,
            "failed_llm_requests": stats.failed_llm_requests,
            "input_tokens": stats.input_tokens,
            "output_tokens": stats.output_tokens,
        },
        "efficiency": {
            "reference_coverage_percentage": pct(stats.reference_hits),
            "cache_coverage_percentage": pct(stats.cache_hits),
            "ai_dependency_percentage": pct(stats.ai_calls_made),
            "cache_hit_rate": round(cache_stats.get("hit_rate", 0.0) * 100),
            "average_llm_latency_ms": (
                stats.total_llm_latency_ms / stats.llm_requests if stats.llm_requests else 0.0
            ),
        },
        "patterns": {
            **coverage,
            "cache_size": cache_stats.get("size", 0),
        },
        "recommendations": build_recommendations(stats, cache_stats, coverage, savings_percentage),
    }


def build_pattern_analysis(cache_stats: Dict[str, Any], coverage: Dict[str, Any]) -> Dict[str, Any]:
    """
    Cache efficiency and reference-data coverage.

    Args:
        cache_stats: ClassificationCache.stats()
        coverage: ReferenceMatcher.coverage_stats()

    Returns:
        {cache, coverage, recommendations}
    """
    hit_rate = cache_stats.get("hit_rate", 0.0)
    size = cache_stats.get("size", 0)
    total_patterns = coverage.get("total_patterns", 0)

    recommendations = []
    if hit_rate < 0.3:
        recommendations.append("Consider expanding reference data patterns to improve cache efficiency")
    if total_patterns < 50:
        recommendations.append("Add more merchant patterns to reduce AI dependency")
    if size > LARGE_CACHE_SIZE:
        recommendations.append("Cache is getting large; consider evicting old entries")

    return {
        "cache": {
            "size": size,
            "hit_rate": round(hit_rate * 100),
            "hits": cache_stats.get("hits", 0),
            "misses": cache_stats.get("misses", 0),
        },
        "coverage": {
            "merchant_patterns": coverage.get("merchant_patterns", 0),
            "category_signatures": coverage.get("category_signatures", 0),
            "total_patterns": total_patterns,
        },
        "recommendations": recommendations,
    }
