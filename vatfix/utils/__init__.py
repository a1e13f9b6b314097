"""Utility functions for the resolution core."""
from .retry import FailureKind, RetryPolicy, classify_failure, retry_async
from .security import cache_identifier, safe_key_part
from .logging_security import SecureLogger, log_secure

__all__ = [
    # Retry utilities
    'FailureKind',
    'RetryPolicy',
    'classify_failure',
    'retry_async',
    # Key sanitization
    'cache_identifier',
    'safe_key_part',
    # Logging
    'SecureLogger',
    'log_secure',
]
