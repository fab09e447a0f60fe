"""
Registry fetch errors.

Every failure talking to Companies House surfaces as a FetchError. The
network builder catches FetchError around each unit of work (one officer's
history, one company profile) and skips that unit; anything else propagates.

Subclasses only differ in their defaults: whether a later attempt could
succeed and which HTTP status they stand for.
"""

from typing import Optional


class FetchError(Exception):
    """
    Base exception for registry fetch failures.

    Attributes:
        message: Human-readable error description
        source: Registry the call went to (e.g. 'companies_house')
        status_code: HTTP status code, if the registry answered
        resource_id: What was being fetched (e.g. 'company:00000001')
        retryable: Whether a later attempt could succeed
    """

    retryable = False
    default_status: Optional[int] = None
    default_message = "Registry request failed"

    def __init__(
        self,
        message: Optional[str] = None,
        source: Optional[str] = None,
        status_code: Optional[int] = None,
        resource_id: Optional[str] = None,
        retryable: Optional[bool] = None,
    ):
        self.message = message or self.default_message
        if resource_id and resource_id not in self.message:
            self.message = f"{self.message}: {resource_id}"
        super().__init__(self.message)
        self.source = source
        self.status_code = status_code if status_code is not None else self.default_status
        self.resource_id = resource_id
        if retryable is not None:
            self.retryable = retryable

    def __str__(self) -> str:
        text = self.message
        if self.source:
            text = f"[{self.source}] {text}"
        if self.status_code:
            text = f"{text} (HTTP {self.status_code})"
        return text


class RetryableError(FetchError):
    """Registry 5xx, timeout or dropped connection."""
    retryable = True
    default_message = "Registry temporarily unavailable"


class RateLimitError(FetchError):
    """
    Rate limit hit, either a registry 429 or the local limiter running out.

    retry_after is the number of seconds to wait before the next request.
    """
    retryable = True
    default_status = 429
    default_message = "Rate limited"

    def __init__(
        self,
        message: Optional[str] = None,
        source: Optional[str] = None,
        retry_after: Optional[int] = None,
        resource_id: Optional[str] = None,
    ):
        super().__init__(message=message, source=source, resource_id=resource_id)
        self.retry_after = retry_after or 60


class FatalError(FetchError):
    """The same request will keep failing (bad key, bad input, unknown resource)."""
    default_message = "Registry rejected the request"


class AuthenticationError(FatalError):
    """Companies House rejected the API key."""
    default_status = 401
    default_message = "Authentication failed - check COMPANIES_HOUSE_API_KEY"


class NotFoundError(FatalError):
    """Unknown company number or officer appointments ref."""
    default_status = 404
    default_message = "Not found"


class ValidationError(FatalError):
    """Registry refused the request parameters."""
    default_status = 400
    default_message = "Invalid request parameters"


_ERRORS_BY_STATUS = {
    400: ValidationError,
    401: AuthenticationError,
    404: NotFoundError,
}


def classify_http_error(
    status_code: int,
    response_text: str = "",
    source: Optional[str] = None,
    resource_id: Optional[str] = None,
) -> FetchError:
    """
    Map a non-2xx registry response to a FetchError subclass.

    The response body is truncated into the message, except for 404s where
    the resource id says enough.
    """
    detail = response_text[:200]

    if status_code == 429:
        return RateLimitError(message=f"Rate limited: {detail}", source=source, resource_id=resource_id)
    if status_code == 404:
        return NotFoundError(source=source, resource_id=resource_id)
    if status_code in _ERRORS_BY_STATUS:
        error_class = _ERRORS_BY_STATUS[status_code]
        return error_class(
            message=f"{error_class.default_message}: {detail}",
            source=source,
            resource_id=resource_id,
        )
    if status_code == 403:
        return FatalError(
            message=f"Access forbidden: {detail}",
            source=source,
            status_code=403,
            resource_id=resource_id,
        )
    if 500 <= status_code < 600:
        return RetryableError(
            message=f"Server error: {detail}",
            source=source,
            status_code=status_code,
            resource_id=resource_id,
        )
    return FetchError(
        message=f"HTTP error {status_code}: {detail}",
        source=source,
        status_code=status_code,
        resource_id=resource_id,
    )
