"""
FastAPI routes for transaction classification.
Thin layer: request validation and JSON shaping only.
"""
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import Body, Depends, FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError as PydanticValidationError

from core.exceptions import ValidationError
from core.logger import setup_logger
from core.normalize import normalize_transaction, normalize_transactions, parse_user_profile
from core.schema import ProcessingOptions
from services.classification_service import ClassificationOrchestrator, build_orchestrator

logger = setup_logger(__name__)

# Initialize FastAPI app
app = FastAPI(
    title="Hybrid Tax Classification",
    description="Classify transactions with reference data, a cache and batched LLM calls",
    version="1.0.0"
)

_orchestrator: Optional[ClassificationOrchestrator] = None


def get_orchestrator() -> ClassificationOrchestrator:
    """Lazily build the process-wide orchestrator."""
    global _orchestrator
    if _orchestrator is None:
        _orchestrator = build_orchestrator()
    return _orchestrator


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    logger.warning(f"Rejected request to {request.url.path}: {exc.message}")
    return JSONResponse(
        status_code=400,
        content={
            "success": False,
            "error": exc.message,
            "details": exc.details,
            "timestamp": _timestamp(),
        },
    )


def parse_options(raw: Optional[Dict[str, Any]], user_profile: Optional[Dict[str, Any]]) -> ProcessingOptions:
    """Validate processing options; the top-level userProfile wins over options.userProfile."""
    data = dict(raw or {})
    profile = parse_user_profile(user_profile)
    if profile is not None:
        data["user_profile"] = profile
        data.pop("userProfile", None)
    try:
        return ProcessingOptions.model_validate(data)
    except PydanticValidationError as e:
        raise ValidationError(
            "Invalid processing options",
            details={"errors": [err.get("msg") for err in e.errors()]},
        )


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "service": "tax_classifier",
        "version": "1.0.0"
    }


@app.post("/analyze-batch")
async def analyze_batch(
    payload: Dict[str, Any] = Body(...),
    orchestrator: ClassificationOrchestrator = Depends(get_orchestrator),
):
    """
    Classify a list of transactions.

    Body:
        transactions: list of {id?, description, amount, merchant?, date?, category?}
        options: {batchSize?, confidenceThreshold?, enableCostOptimization?}
        userProfile: {countryCode?, businessType?, occupation?, aiPsychology?}
    """
    transactions = normalize_transactions(payload.get("transactions"))
    options = parse_options(payload.get("options"), payload.get("userProfile"))

    logger.info(f"Starting batch analysis for {len(transactions)} transactions")
    result = await orchestrator.process_batch(transactions, options)

    return {
        "success": True,
        **result.model_dump(mode="json"),
        "timestamp": _timestamp(),
    }


@app.post("/analyze-single")
async def analyze_single(
    payload: Dict[str, Any] = Body(...),
    orchestrator: ClassificationOrchestrator = Depends(get_orchestrator),
):
    """Classify one transaction (reference data first, AI only if needed)."""
    transaction = normalize_transaction(payload, 0)
    profile = parse_user_profile(payload.get("userProfile"))

    classified = await orchestrator.classify_single(transaction, profile)

    return {
        "success": True,
        "result": classified.model_dump(mode="json"),
        "timestamp": _timestamp(),
    }


@app.get("/cost-analysis")
async def cost_analysis(orchestrator: ClassificationOrchestrator = Depends(get_orchestrator)):
    """Process-wide cost and coverage report."""
    return {
        "success": True,
        "costAnalysis": orchestrator.cost_analysis(),
        "timestamp": _timestamp(),
    }


@app.get("/pattern-analysis")
async def pattern_analysis(orchestrator: ClassificationOrchestrator = Depends(get_orchestrator)):
    """Cache efficiency and reference-data coverage."""
    return {
        "success": True,
        "patternAnalysis": orchestrator.pattern_analysis(),
        "timestamp": _timestamp(),
    }


@app.post("/reset-stats")
async def reset_stats(orchestrator: ClassificationOrchestrator = Depends(get_orchestrator)):
    """Reset processing counters."""
    orchestrator.reset_stats()
    return {
        "success": True,
        "message": "Processing statistics reset successfully",
        "timestamp": _timestamp(),
    }


@app.post("/cache/evict")
async def evict_cache(
    payload: Dict[str, Any] = Body(...),
    orchestrator: ClassificationOrchestrator = Depends(get_orchestrator),
):
    """Evict cache entries older than max_age_days."""
    max_age_days = payload.get("max_age_days")
    if isinstance(max_age_days, bool) or not isinstance(max_age_days, (int, float)) or max_age_days < 0:
        raise ValidationError(
            "max_age_days must be a non-negative number",
            details={"max_age_days": max_age_days},
        )

    evicted = orchestrator.evict_cache(float(max_age_days))
    return {
        "success": True,
        "evicted": evicted,
        "timestamp": _timestamp(),
    }


if __name__ == "__main__":
    import uvicorn
    from core.config import get_settings
    settings = get_settings()
    uvicorn.run(app, host=settings.host, port=settings.port)
