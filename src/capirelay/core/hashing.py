"""
PII hashing for Conversions API user data.

Executes before payload assembly so no raw PII leaves the service.
"""

import hashlib
from typing import Any, Optional

import structlog

logger = structlog.get_logger(__name__)


def normalize_value(value: Any) -> Optional[str]:
    """Lowercase and trim a value; None when nothing is left."""
    if value is None:
        return None
    normalized = str(value).lower().strip()
    return normalized or None


def hash_value(value: Any) -> Optional[str]:
    """
    Hash a single PII value as a SHA-256 hex digest.

    The value is lowercased and trimmed first, so "Test@EXAMPLE.com " and
    "test@example.com" produce the same digest.

    Returns:
        The hex digest, or None when the value is absent, blank or cannot
        be hashed. An empty string is never hashed.
    """
    try:
        normalized = normalize_value(value)
        if normalized is None:
            return None
        return hashlib.sha256(normalized.encode("utf-8")).hexdigest()
    except Exception as e:
        # Never log the raw value
        logger.error(
            "Error hashing data",
            value_type=type(value).__name__,
            error=str(e),
            error_type=type(e).__name__,
            exc_info=True,
        )
        return None
