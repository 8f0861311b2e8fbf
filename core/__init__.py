"""
Core processing modules for hybrid tax classification.

This package contains:
- cache: Classification cache keyed by transaction signatures
- config: Application configuration and settings
- db: SQLite store behind the cache
- exceptions: Custom exception classes
- logger: Logging configuration
- matching: Reference-data matcher
- normalize: Data normalization and request validation
- reference_data: Hand-authored pattern rules
- schema: Pydantic models for data validation
- stats: Cost and coverage counters
"""
