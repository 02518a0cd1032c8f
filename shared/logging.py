"""
Logging utilities — framework-agnostic re-exports.

Services, repositories and routes import from shared.logging; the structlog
configuration itself lives in utils.logging_config.
"""

from utils.logger import get_logger, mask
from utils.logging_config import (
    configure_structlog,
    mask_identifier,
    setup_logging,
)

__all__ = [
    "get_logger",
    "mask",
    "mask_identifier",
    "configure_structlog",
    "setup_logging",
]
