"""Domain-specific exceptions for the generation lifecycle.

Provider adapters raise only :class:`ProviderError` subclasses. Each carries
the :class:`FailureKind` persisted on a failed job, whether the poller may
retry it, and whether a fallback provider may take over.
"""

from __future__ import annotations

from .generation_models import FailureKind


class GenerationError(Exception):
    """Base class for generation-related errors."""

    kind: FailureKind = FailureKind.INTERNAL


class GenerationValidationError(GenerationError):
    """Raised when a submitted request is rejected before a job exists."""

    kind = FailureKind.INVALID_REQUEST


class JobNotFoundError(GenerationError, LookupError):
    """Raised when a job id is unknown or belongs to another user."""


class CorrelationNotFoundError(GenerationError, LookupError):
    """Raised when a callback token matches no job and no lyrics record."""


class ProviderError(GenerationError):
    """Normalized failure reported by a provider adapter."""

    kind = FailureKind.PROVIDER_FAILED
    retryable = False
    fallback_eligible = True


class DispatchError(ProviderError):
    """Provider rejected the generation request."""

    kind = FailureKind.DISPATCH


class AuthenticationFailedError(DispatchError):
    kind = FailureKind.AUTHENTICATION


class MalformedRequestError(DispatchError):
    kind = FailureKind.MALFORMED_REQUEST
    fallback_eligible = False


class InsufficientBalanceError(DispatchError):
    kind = FailureKind.INSUFFICIENT_BALANCE


class ContentPolicyError(DispatchError):
    kind = FailureKind.CONTENT_POLICY
    fallback_eligible = False


class TransientProviderError(ProviderError):
    """Network failure or 5xx; retried by the poller."""

    kind = FailureKind.TRANSIENT
    retryable = True


class RateLimitedError(TransientProviderError):
    """Provider throttled the caller; retried after a longer delay."""

    kind = FailureKind.RATE_LIMITED


class GenerationFailedError(ProviderError):
    """Provider accepted the task but reported it as failed."""

    kind = FailureKind.PROVIDER_FAILED


class NoArtifactError(ProviderError):
    """Provider reported success without a usable audio location."""

    kind = FailureKind.NO_ARTIFACT
    fallback_eligible = False


class PollingTimeoutError(ProviderError):
    """Status checks exhausted the attempt ceiling."""

    kind = FailureKind.TIMEOUT
    fallback_eligible = False
