"""
EcoDex Backend - Custom Exception Hierarchy
=============================================

What:  Application-specific exceptions for every failure mode of the
       discovery pipeline and its HTTP surface.
How:   Each exception carries a human-readable message, an optional context
       dict and a machine-readable `kind`. Global exception handlers
       (registered in main.py) render them as structured JSON errors.
Who:   Raised by services; caught by global handlers.

Exception Hierarchy:
    EcoDexError (base)
    ├── InputValidationError          → 400 (no image / message, bad upload)
    ├── ImageDecodeError              → 400 (corrupt or unsupported image)
    ├── NotFoundError                 → 404
    ├── OracleUnavailableError        → 503 (retryable after backoff)
    │   └── CircuitBreakerOpenError   → 503 (circuit open)
    ├── MalformedOracleResponseError  → 502 (oracle replied off-schema)
    └── PersistenceError              → 500 (storage failure, with stage detail)

Rate limiting answers 429 directly from its middleware, outside this hierarchy.
"""

from typing import Any, Dict, Optional


class EcoDexError(Exception):
    """
    Base exception for all EcoDex application errors.

    Attributes:
        message:   User-facing error description
        context:   Additional debug info, returned as `details` where safe
        kind:      Machine-distinguishable error code
        retryable: Whether resubmitting the same request can succeed
    """

    kind = "ecodex_error"
    retryable = False

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class InputValidationError(EcoDexError):
    """
    Raised when the request is missing required input or the upload is unusable.

    When: No image supplied to identify, neither message nor image supplied
          to chat, upload not MIME-typed as an image, upload over the size limit.
    HTTP: 400 Bad Request
    """

    kind = "input_validation_error"

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


class ImageDecodeError(EcoDexError):
    """
    Raised when uploaded bytes are not a valid or supported image.

    Malformed input is not transient, so the pipeline run is aborted
    without retry.
    HTTP: 400 Bad Request
    """

    kind = "image_decode_error"

    def __init__(
        self,
        message: str = "The uploaded file could not be read as an image",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class NotFoundError(EcoDexError):
    """
    Raised when a requested resource does not exist.

    When: Unknown discovery id, discovery owned by another user, or the
          caller's user profile does not exist.
    HTTP: 404 Not Found
    """

    kind = "not_found"

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


class OracleUnavailableError(EcoDexError):
    """
    Raised when the species oracle cannot be reached or refuses the call.

    When: Network failure, timeout, authentication failure, quota exhausted,
          after in-client retries are exhausted.
    HTTP: 503 Service Unavailable (with Retry-After when known)
    """

    kind = "oracle_unavailable"
    retryable = True

    def __init__(
        self,
        message: str = "The species identification service is temporarily unavailable",
        retry_after: Optional[int] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if retry_after:
            ctx["retry_after"] = retry_after
        super().__init__(message=message, context=ctx)
        self.retry_after = retry_after


class CircuitBreakerOpenError(OracleUnavailableError):
    """
    Raised when the oracle circuit breaker is in OPEN state.

    How circuit breaker works:
        CLOSED (normal) → failures increment counter
        → After N failures → OPEN (reject all calls for M seconds)
        → After M seconds → HALF-OPEN (allow one test call)
        → If test succeeds → CLOSED
        → If test fails → OPEN again
    """

    kind = "oracle_circuit_open"

    def __init__(
        self,
        recovery_time: int = 60,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        ctx["recovery_time"] = recovery_time
        super().__init__(
            message=(
                "The species identification service is temporarily unavailable "
                f"due to repeated failures. Please retry in about {recovery_time} seconds."
            ),
            retry_after=recovery_time,
            context=ctx,
        )
        self.recovery_time = recovery_time


class MalformedOracleResponseError(EcoDexError):
    """
    Raised when the oracle replied, but not in the expected schema.

    Distinct from OracleUnavailableError: the service was reachable.
    The raw reply travels with the error so prompt or schema drift can be
    diagnosed. Never retried automatically.
    HTTP: 502 Bad Gateway
    """

    kind = "malformed_oracle_response"

    def __init__(
        self,
        message: str = "The species identification service returned an unreadable response",
        raw_response: str = "",
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        ctx["raw_response"] = raw_response
        super().__init__(message=message, context=ctx)
        self.raw_response = raw_response


class PersistenceError(EcoDexError):
    """
    Raised when storing a discovery or updating user progress fails.

    Attributes:
        stage:     Ledger step that failed (progress_lookup, novelty_check,
                   entry_create, progress_update, commit), or the read
                   query that failed (entry_lookup, entry_list, stats,
                   user_create, user_lookup)
        persisted: "nothing" when the transaction was rolled back cleanly,
                   "unknown" when the rollback itself failed after the entry
                   had been written. Callers use this to decide whether a
                   resubmission risks a duplicate entry.
    HTTP: 500 Internal Server Error
    """

    kind = "persistence_error"

    NOTHING = "nothing"
    UNKNOWN = "unknown"

    def __init__(
        self,
        message: str = "Your discovery could not be saved. Please try again later.",
        stage: str = "unknown",
        persisted: str = NOTHING,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        ctx["stage"] = stage
        ctx["persisted"] = persisted
        super().__init__(message=message, context=ctx)
        self.stage = stage
        self.persisted = persisted
