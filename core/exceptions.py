"""
Custom exceptions for better error handling.
"""
from typing import Any, Dict, Optional


class TaxClassifierException(Exception):
    """Base exception for all classification pipeline errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        """
        Initialize exception.

        Args:
            message: Error message
            details: Additional error details
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ValidationError(TaxClassifierException):
    """Raised when an incoming transaction is malformed."""
    pass


class TransportError(TaxClassifierException):
    """Raised when the LLM call fails (timeout, HTTP error, empty content)."""
    pass


class ParseError(TaxClassifierException):
    """Raised when a reply line does not follow the compact grammar."""
    pass


class CacheUnavailable(TaxClassifierException):
    """Raised when the durable cache store cannot be read or written."""
    pass


class ConfigurationError(TaxClassifierException):
    """Raised when configuration is invalid."""
    pass
