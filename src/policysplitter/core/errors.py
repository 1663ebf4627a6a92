"""
Error taxonomy for policy-splitter.

The reconciler absorbs AlreadyExists on create and NotFound for the object
it reconciles or the root it writes to. Every other store error makes a
reconcile retryable. Malformed policy data is terminal: retrying cannot fix
it, only a new write to the object can.

Exit Codes (CLI):
- 0: Success
- 10: Configuration error
- 11: Store error (object store / API server failure, retryable)
- 12: Malformed policy data
- 127: Unknown/internal error
"""

from __future__ import annotations

import functools
import sys
import traceback
from enum import IntEnum
from typing import Any, Callable, TypeVar

import structlog

logger = structlog.get_logger()


class ExitCode(IntEnum):
    """Standardized exit codes for CLI commands."""

    SUCCESS = 0
    CONFIG_ERROR = 10
    STORE_ERROR = 11
    MALFORMED_POLICY = 12
    UNKNOWN_ERROR = 127


class PolicySplitterError(Exception):
    """Base exception for policy-splitter errors with exit code support."""

    exit_code: ExitCode = ExitCode.UNKNOWN_ERROR
    retryable: bool = False
    show_traceback: bool = False

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ConfigurationError(PolicySplitterError):
    """Raised for configuration-related errors."""

    exit_code = ExitCode.CONFIG_ERROR


class StoreError(PolicySplitterError):
    """Raised when the object store rejects or fails a request."""

    exit_code = ExitCode.STORE_ERROR
    retryable = True


class NotFoundError(StoreError):
    """The requested object does not exist (or no longer exists)."""


class AlreadyExistsError(StoreError):
    """A create collided with an existing object of the same name."""


class ConflictError(StoreError):
    """An update was rejected because the object changed since it was read."""


class TransientStoreError(StoreError):
    """Throttling, server-side or network failure worth retrying."""


class MalformedPolicyError(PolicySplitterError):
    """Policy labels are inconsistent, e.g. a leaf with an empty owner name."""

    exit_code = ExitCode.MALFORMED_POLICY


class RetryableError(PolicySplitterError):
    """Wraps a failure that requires the whole reconcile to run again."""

    exit_code = ExitCode.STORE_ERROR
    retryable = True

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
        *,
        cause: BaseException | None = None,
    ):
        super().__init__(message, details)
        self.cause = cause


# Type variable for decorated functions
F = TypeVar("F", bound=Callable[..., int])


def main_with_error_handling(
    *,
    show_traceback: bool = False,
    log_errors: bool = True,
) -> Callable[[F], F]:
    """
    Decorator for CLI commands that provides unified error handling.

    Catches exceptions and converts them to appropriate exit codes with
    consistent error reporting.

    Usage:
        @main_with_error_handling()
        def run_command(args) -> int:
            ...
            return 0

    Exit codes:
        - PolicySplitterError subclasses: Uses the error's exit_code
        - KeyboardInterrupt: Returns 130 (standard for SIGINT)
        - Other exceptions: Returns 127 (unknown error)
    """

    def decorator(func: F) -> F:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> int:
            try:
                return func(*args, **kwargs)
            except PolicySplitterError as e:
                if log_errors:
                    logger.error(
                        "command_error",
                        error_type=type(e).__name__,
                        message=e.message,
                        exit_code=e.exit_code,
                        **e.details,
                    )
                if e.show_traceback or show_traceback:
                    traceback.print_exc(file=sys.stderr)
                return e.exit_code
            except KeyboardInterrupt:
                if log_errors:
                    logger.info("command_interrupted")
                return 130
            except Exception as e:
                if log_errors:
                    logger.error(
                        "unexpected_error",
                        error_type=type(e).__name__,
                        message=str(e),
                        exit_code=ExitCode.UNKNOWN_ERROR,
                    )
                if show_traceback:
                    traceback.print_exc(file=sys.stderr)
                return ExitCode.UNKNOWN_ERROR

        return wrapper  # type: ignore[return-value]

    return decorator


def format_error_message(error: PolicySplitterError) -> str:
    """Format an error message for display to users."""
    msg = error.message
    if error.details:
        detail_str = ", ".join(f"{k}={v}" for k, v in error.details.items())
        msg = f"{msg} ({detail_str})"
    return msg
