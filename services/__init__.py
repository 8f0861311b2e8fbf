"""
Service layer for business logic.

This package contains the classification pipeline that routes
transactions through the cache, reference data and batched LLM
calls, plus batch pacing and cost reporting.
"""
