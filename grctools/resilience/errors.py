#!/usr/bin/env python3
# CUI // SP-CTI
"""GRC Toolkit Resilience: Structured Exception Hierarchy.

Errors that abort an assessment run derive from GRCError. Recoverable
conditions (catalog lookup misses, a single workflow reporting failure) are
not exceptions: they are recorded as degradations and surface in the output
documents.

Usage:
    from grctools.resilience.errors import InputError, CollaboratorUnavailableError

    raise CollaboratorUnavailableError("executor unreachable", service="executor")
"""


class GRCError(Exception):
    """Base exception for all GRC toolkit errors.

    Attributes:
        service: Name of the collaborator or component that raised (e.g. "catalog").
        retryable: Whether the caller may retry the operation.
    """

    def __init__(self, message: str, service: str = "", retryable: bool = False):
        super().__init__(message)
        self.service = service
        self.retryable = retryable


class GRCTransientError(GRCError):
    """Transient error: the operation may succeed if the caller retries."""

    def __init__(self, message: str, service: str = "", retryable: bool = True):
        super().__init__(message, service=service, retryable=retryable)


class GRCPermanentError(GRCError):
    """Permanent error: retrying with the same input will not help."""

    def __init__(self, message: str, service: str = "", retryable: bool = False):
        super().__init__(message, service=service, retryable=retryable)


class InputError(GRCPermanentError):
    """Malformed or empty scenario input."""

    def __init__(self, message: str):
        super().__init__(message, service="input", retryable=False)


class CollaboratorUnavailableError(GRCTransientError):
    """The control catalog or workflow executor could not be reached."""

    def __init__(self, message: str = "", service: str = ""):
        super().__init__(
            message or f"Collaborator '{service}' is unavailable",
            service=service,
            retryable=True,
        )


class IntegrityViolationError(GRCPermanentError):
    """A document would contain duplicate UUIDs or dangling control references.

    Attributes:
        errors: List of individual integrity problems found.
    """

    def __init__(self, message: str, errors=None):
        super().__init__(message, service="document-builder", retryable=False)
        self.errors = list(errors or [])


class ConfigurationError(GRCPermanentError):
    """Missing or invalid policy configuration."""

    def __init__(self, message: str, config_key: str = ""):
        super().__init__(message, service="config", retryable=False)
        self.config_key = config_key
