"""
LLM integration for batch tax classification.

This package contains:
- classify: Batch classifier with per-batch failure isolation
- client: Chat completions REST client wrapper
- codec: Compact reply decoding
- pricing: Token pricing for cost accounting
- prompts: System and user prompt builders
"""
