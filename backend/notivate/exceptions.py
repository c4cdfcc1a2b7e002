"""
Notivate Backend - Custom Exception Hierarchy
===============================================

What:  Application-specific exceptions, one per failure the pipeline can report.
How:   Each class carries a user-safe message, an optional context dict (logged,
       never returned), an HTTP status code and a stable machine-readable
       error code. Global handlers in main.py turn them into JSON responses.
Who:   Raised by services, adapters and dependencies; caught by global handlers.

Exception Hierarchy:
    NotivateError (base)
    ├── ValidationError              → 400 (missing / wrong type / oversized image)
    ├── NoTextFoundError             → 400 (OCR ran, found nothing usable)
    ├── AuthenticationError          → 401
    ├── QuotaExceededError           → 403 (carries usage counters)
    ├── NotFoundError                → 404
    ├── UpstreamServiceError         → 500
    │   ├── ExtractionFailedError        (OCR unreachable / rejected / malformed)
    │   ├── SynthesisUnavailableError    (model unreachable / auth / quota / timeout)
    │   └── SynthesisMalformedError      (model answered with unparsable data)
    ├── CircuitBreakerOpenError      → 500 (internal to adapters)
    ├── AccountingError              → 500 (only surfaced when the quota check fails)
    ├── FileStorageError             → 500
    └── DatabaseError                → 500
"""

from typing import Any, Dict, Optional


class NotivateError(Exception):
    """
    Base exception for all Notivate application errors.

    Attributes:
        message:  User-facing error description (safe to return in API response)
        context:  Additional debug info (logged but NOT returned to client)
    """

    status_code = 500
    error_code = "server_error"

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class ValidationError(NotivateError):
    """
    Raised when the uploaded image fails validation.

    When:    No image, extension/media type outside the accepted set, empty or
             oversized payload. Always raised before any adapter is invoked.
    """

    status_code = 400
    error_code = "validation_error"

    def __init__(
        self,
        message: str = "Validation failed",
        field: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if field:
            ctx["field"] = field
        super().__init__(message=message, context=ctx)
        self.field = field


class NoTextFoundError(NotivateError):
    """
    Raised when extraction succeeded technically but produced no usable text.

    User-correctable: the client should retake the photo. Distinct from
    ExtractionFailedError, which means the OCR capability itself failed.
    """

    status_code = 400
    error_code = "no_text_found"

    def __init__(
        self,
        message: str = (
            "No text could be extracted from this image. "
            "Try a clearer photo with more visible text."
        ),
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class AuthenticationError(NotivateError):
    """Raised when the bearer credential is missing, invalid or expired."""

    status_code = 401
    error_code = "unauthorized"

    def __init__(
        self,
        message: str = "Missing or invalid authorization header",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class QuotaExceededError(NotivateError):
    """
    Raised when a free-tier user has used every transform for the month.

    HTTP:    403 Forbidden, with currentUsage / limit / upgradePath in the body
             so the client can render an upgrade prompt.
    """

    status_code = 403
    error_code = "quota_exceeded"

    def __init__(
        self,
        current_usage: int,
        limit: int,
        upgrade_path: str = "/pricing",
        context: Optional[Dict[str, Any]] = None,
    ):
        message = (
            f"You've used all {limit} free transforms this month. "
            f"Upgrade to Premium for unlimited transforms!"
        )
        ctx = context or {}
        ctx.update({"current_usage": current_usage, "limit": limit})
        super().__init__(message=message, context=ctx)
        self.current_usage = current_usage
        self.limit = limit
        self.upgrade_path = upgrade_path


class NotFoundError(NotivateError):
    """Raised when a requested resource does not exist (or belongs to someone else)."""

    status_code = 404
    error_code = "not_found"

    def __init__(
        self,
        resource: str = "resource",
        resource_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = f"The requested {resource} was not found"
        if resource_id:
            message = f"{resource} with ID '{resource_id}' was not found"
        ctx = context or {}
        ctx["resource"] = resource
        if resource_id:
            ctx["resource_id"] = resource_id
        super().__init__(message=message, context=ctx)


class UpstreamServiceError(NotivateError):
    """
    Base for failures of an external capability (OCR or generative model).

    Retryable by the caller. `retry_after` is set when a circuit breaker knows
    how long the upstream will be skipped.
    """

    status_code = 500
    error_code = "upstream_error"

    def __init__(
        self,
        message: str = "An external service failed. Please try again.",
        retry_after: Optional[int] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if retry_after:
            ctx["retry_after"] = retry_after
        super().__init__(message=message, context=ctx)
        self.retry_after = retry_after


class ExtractionFailedError(UpstreamServiceError):
    """OCR was unreachable, rejected the image, timed out or answered malformed."""

    error_code = "extraction_failed"

    def __init__(
        self,
        message: str = "Failed to extract text from image",
        retry_after: Optional[int] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, retry_after=retry_after, context=context)


class SynthesisUnavailableError(UpstreamServiceError):
    """The generative model could not be reached (network, auth, quota, timeout)."""

    error_code = "synthesis_unavailable"

    def __init__(
        self,
        message: str = "The study guide generator is temporarily unavailable. Please try again.",
        retry_after: Optional[int] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, retry_after=retry_after, context=context)


class SynthesisMalformedError(UpstreamServiceError):
    """
    The generative model answered, but not with a valid study guide.

    All-or-nothing: no partially populated StudyGuide ever leaves the adapter.
    """

    error_code = "synthesis_malformed"

    def __init__(
        self,
        message: str = "AI returned an invalid response format. Please try again.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class CircuitBreakerOpenError(NotivateError):
    """
    Raised by a CircuitBreaker that is OPEN.

    Adapters translate it into their own failure type so the pipeline only
    ever sees ExtractionFailedError / SynthesisUnavailableError.
    """

    error_code = "service_unavailable"

    def __init__(
        self,
        service: str = "upstream",
        recovery_time: int = 60,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = (
            f"The {service} service is temporarily unavailable due to repeated failures. "
            f"Retrying automatically in approximately {recovery_time} seconds."
        )
        ctx = context or {}
        ctx.update({"service": service, "recovery_time": recovery_time})
        super().__init__(message=message, context=ctx)
        self.service = service
        self.recovery_time = recovery_time


class AccountingError(NotivateError):
    """
    Raised when the usage store cannot be read or written.

    Only the quota check surfaces this (fail-closed). Increment failures after
    a successful transform are reported as a DEGRADED AccountingResult instead.
    """

    error_code = "accounting_error"

    def __init__(
        self,
        message: str = "Failed to check usage limits",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class FileStorageError(NotivateError):
    """Raised when writing the transient upload to disk fails."""

    def __init__(
        self,
        message: str = "File storage operation failed",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class DatabaseError(NotivateError):
    """
    Raised when database operations fail unexpectedly.

    The message returned to the client is always generic; details are logged.
    """

    def __init__(
        self,
        message: str = "A database error occurred. Please try again later.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)
