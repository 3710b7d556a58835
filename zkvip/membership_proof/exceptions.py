"""
Custom exceptions for the membership proof pipeline.

These exceptions give callers a structured way to tell user-correctable
input problems apart from oracle and proof-system failures.
"""


class MembershipProofError(Exception):
    """Base exception for membership proof errors."""

    pass


class ValidationError(MembershipProofError):
    """Proof inputs are invalid (user-correctable)."""

    pass


class OracleError(MembershipProofError):
    """Balance lookup failed or timed out (retry by re-running the pipeline)."""

    pass


class BackendError(MembershipProofError):
    """Circuit loading, witness generation, proving or verification failed."""

    pass


class ConfigurationError(MembershipProofError):
    """Configuration error."""

    pass
