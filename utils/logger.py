"""
Logger factory and utility functions for the sentinel auth service.

Provides:
- get_logger(): Get a configured logger instance
- mask(): Mask an email/phone identifier for log events
"""

from typing import Optional

import structlog
from structlog.stdlib import BoundLogger

from .logging_config import mask_identifier


def get_logger(name: str) -> BoundLogger:
    """
    Get a configured logger instance.

    Args:
        name: Logger name (typically __name__ of the calling module)

    Returns:
        Configured structlog BoundLogger instance

    Example:
        >>> from shared.logging import get_logger
        >>> log = get_logger(__name__)
        >>> log.info("otp_verified", identifier_type="email")
    """
    return structlog.get_logger(name)


def mask(identifier: Optional[str]) -> Optional[str]:
    """
    Mask an identifier, passing ``None`` through.

    Example:
        >>> log.warning("otp_identifier_mismatch", identifier=mask(email))
    """
    if identifier is None:
        return None
    return mask_identifier(identifier)
