#!/usr/bin/env python3
# CUI // SP-CTI
"""GRC Toolkit Resilience Package: Errors and Run Correlation."""

from grctools.resilience.correlation import (  # noqa: F401
    CorrelationLogFilter,
    clear_correlation_id,
    generate_correlation_id,
    get_correlation_id,
    reset_correlation_id,
    set_correlation_id,
)
from grctools.resilience.errors import (  # noqa: F401
    CollaboratorUnavailableError,
    ConfigurationError,
    GRCError,
    GRCPermanentError,
    GRCTransientError,
    InputError,
    IntegrityViolationError,
)
