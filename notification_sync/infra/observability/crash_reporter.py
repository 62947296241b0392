"""Crash reporting capability."""
import logging
from typing import Any, Optional

logger = logging.getLogger(__name__)


class NullCrashReporter:
    """Default reporter when no crash-reporting service is configured: records go to the log."""

    def record_error(self, error: BaseException, context: Optional[dict[str, Any]] = None) -> None:
        logger.debug("crash report: %s: %s (%s)", type(error).__name__, error, context or {})

    def log(self, message: str) -> None:
        logger.debug("crash log: %s", message)
