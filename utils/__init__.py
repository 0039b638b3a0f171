"""
Projection Engine Utilities

Shared helpers for external data calls.
"""

from .api_retry import APIRetryConfig, EmptyResultError, calculate_delay, retry_api_call

__all__ = [
    'APIRetryConfig',
    'EmptyResultError',
    'calculate_delay',
    'retry_api_call',
]
