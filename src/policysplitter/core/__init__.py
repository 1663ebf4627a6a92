"""Core modules for policy-splitter - centralized definitions and utilities."""

from policysplitter.core.errors import (
    AlreadyExistsError,
    ConfigurationError,
    ConflictError,
    ExitCode,
    MalformedPolicyError,
    NotFoundError,
    PolicySplitterError,
    RetryableError,
    StoreError,
    TransientStoreError,
    format_error_message,
    main_with_error_handling,
)

__all__ = [
    "ExitCode",
    "PolicySplitterError",
    "ConfigurationError",
    "StoreError",
    "NotFoundError",
    "AlreadyExistsError",
    "ConflictError",
    "TransientStoreError",
    "MalformedPolicyError",
    "RetryableError",
    "main_with_error_handling",
    "format_error_message",
]
