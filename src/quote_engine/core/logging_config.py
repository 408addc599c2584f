"""
Structured logging configuration for quote-engine.

Provides JSON-formatted or human-readable logs with provider/symbol context
for every resolution, plus a dedicated audit file for provider failures.

Usage:
    from quote_engine.core.logging_config import configure_logging, ResolutionLogger

    configure_logging(level="INFO", log_dir=Path("logs"), enable_file=True)
    ResolutionLogger(request_id="ab12cd34").symbol_resolved("RHM.DE", "yahoo", 0)
"""

import sys
from pathlib import Path
from typing import Any, Dict, Optional

from loguru import logger


PROVIDER_AUDIT_EVENTS = (
    "provider_failed",
    "credential_failed",
    "symbol_unresolved",
    "resolution_complete",
)


def configure_logging(
    level: str = "INFO",
    log_dir: Optional[Path] = None,
    enable_console: bool = True,
    enable_file: bool = False,
    rotation: str = "1 day",
    retention: str = "30 days",
    compression: str = "zip",
    serialize: bool = False
) -> None:
    """
    Configure logging for the entire application.

    Args:
        level: Minimum log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_dir: Directory for log files (default: logs/)
        enable_console: Enable console output
        enable_file: Enable file output
        rotation: When to rotate logs (e.g., "1 day", "500 MB")
        retention: How long to keep logs
        compression: Compression format for old logs
        serialize: Use JSON format
    """
    logger.remove()

    if enable_console:
        if serialize:
            logger.add(
                sys.stderr,
                level=level,
                serialize=True,
                backtrace=True,
                diagnose=False
            )
        else:
            logger.add(
                sys.stderr,
                level=level,
                format=(
                    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
                    "<level>{level: <8}</level> | "
                    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
                    "<level>{message}</level>"
                ),
                colorize=True
            )

    if enable_file:
        log_dir = log_dir or Path("logs")

        try:
            log_dir.mkdir(exist_ok=True, parents=True)
        except OSError as e:
            logger.error(f"Cannot create log directory {log_dir}: {e}")
            raise OSError(f"Failed to create log directory {log_dir}: {e}") from e

        logger.add(
            log_dir / "quote_engine_{time}.log",
            level=level,
            rotation=rotation,
            retention=retention,
            compression=compression,
            serialize=serialize,
            backtrace=True,
            diagnose=False
        )

        # Provider failure audit trail
        logger.add(
            log_dir / "providers_{time}.log",
            level="INFO",
            rotation=rotation,
            retention=retention,
            compression=compression,
            serialize=serialize,
            filter=_is_audit_record
        )

        logger.add(
            log_dir / "errors_{time}.log",
            level="WARNING",
            rotation=rotation,
            retention=retention,
            compression=compression,
            serialize=serialize
        )


def _is_audit_record(record: Dict[str, Any]) -> bool:
    return any(event in record["message"] for event in PROVIDER_AUDIT_EVENTS)


class ResolutionLogger:
    """
    Logger for resolution events with standardized fields.

    One instance per resolution so every event carries the same request id.
    """

    def __init__(self, request_id: Optional[str] = None, mode: Optional[str] = None):
        self.logger = logger
        self.request_id = request_id
        self.mode = mode

    def _base_context(self) -> Dict[str, Any]:
        context = {}
        if self.request_id:
            context["request_id"] = self.request_id
        if self.mode:
            context["mode"] = self.mode
        return context

    def provider_failed(self, symbol: str, provider: str, reason: str, **kwargs):
        """Log one failed provider attempt."""
        context = self._base_context()
        context.update({
            "event": "provider_failed",
            "symbol": symbol,
            "provider": provider,
            "reason": reason,
            **kwargs
        })
        self.logger.bind(**context).warning(
            f"provider_failed | {symbol} | {provider}: {reason}"
        )

    def credential_failed(self, provider: str, reason: str, **kwargs):
        """Log a session/token acquisition failure."""
        context = self._base_context()
        context.update({
            "event": "credential_failed",
            "provider": provider,
            "reason": reason,
            **kwargs
        })
        self.logger.bind(**context).warning(f"credential_failed | {provider}: {reason}")

    def symbol_resolved(self, symbol: str, provider: str, attempts: int, **kwargs):
        context = self._base_context()
        context.update({
            "event": "symbol_resolved",
            "symbol": symbol,
            "provider": provider,
            "failed_attempts": attempts,
            **kwargs
        })
        self.logger.bind(**context).debug(f"symbol_resolved | {symbol} | {provider}")

    def symbol_unresolved(self, symbol: str, reasons: str, **kwargs):
        context = self._base_context()
        context.update({
            "event": "symbol_unresolved",
            "symbol": symbol,
            "reasons": reasons,
            **kwargs
        })
        self.logger.bind(**context).warning(f"symbol_unresolved | {reasons}")

    def resolution_complete(
        self,
        requested: int,
        resolved: int,
        source: str,
        errors: int,
        elapsed_ms: float,
        **kwargs
    ):
        """Log the summary line for one resolution."""
        context = self._base_context()
        context.update({
            "event": "resolution_complete",
            "requested": requested,
            "resolved": resolved,
            "source": source,
            "errors": errors,
            "elapsed_ms": round(elapsed_ms, 1),
            **kwargs
        })
        self.logger.bind(**context).info(
            f"resolution_complete | {resolved}/{requested} | "
            f"source={source} | errors={errors} | {elapsed_ms:.0f}ms"
        )


# NOTE: Logging is NOT configured on import. Entry points call
# configure_logging() explicitly (see quote_engine.cli).
