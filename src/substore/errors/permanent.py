"""Permanent (non-retryable) errors."""

from __future__ import annotations

from substore.error_codes import ErrorCode
from substore.errors.base import SubstoreError


class PermanentError(SubstoreError):
    """Non-retryable errors.

    Running the same operation again will fail the same way until
    something (data, schema, configuration, calling code) is fixed.
    """

    code: int = 102


class ConfigurationError(PermanentError):
    """Invalid configuration.

    Raised during initialization, for example for an unusable table
    name or an unknown connection string scheme.
    """

    code: int = 104
    default_error_code = ErrorCode.CONFIGURATION_INVALID
