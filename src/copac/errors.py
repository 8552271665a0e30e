"""
Exception hierarchy for COPAC.

Every error raised on purpose by this package derives from ``COPACError``
and also from the closest built-in exception, so callers can catch either.
"""


class COPACError(Exception):
    """Base class for errors raised by the copac package."""


class ParameterError(COPACError, ValueError):
    """Invalid configuration, detected before any data is processed."""


class NumericError(COPACError, ArithmeticError):
    """Non-finite input or a failed decomposition."""


class FatalStateError(COPACError, RuntimeError):
    """An internal invariant was violated (e.g. inconsistent id bookkeeping)."""


class OrchestrationCancelled(COPACError):
    """The run was cancelled; partial results were discarded."""
