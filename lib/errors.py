"""
Custom error classes for HubSpot Pulse.
Structured error handling with error codes across all modules.

Hierarchy:
    HubError
    ├── APIError
    │   ├── APITimeoutError
    │   ├── APIRateLimitError
    │   ├── APIAuthError
    │   └── APIResponseError
    └── DataError
        └── ConfigError
"""


class HubError(Exception):
    """Base exception for all HubSpot Pulse errors."""

    def __init__(self, message: str, code: str = "UNKNOWN", details: dict = None):
        self.code = code
        self.details = details or {}
        super().__init__(f"[{code}] {message}")


# --- API Errors ---

class APIError(HubError):
    """Base class for CRM API errors."""

    def __init__(self, message: str, code: str = "API_ERROR",
                 status_code: int = None, url: str = None, **kwargs):
        self.status_code = status_code
        self.url = url
        details = {"status_code": status_code, "url": url, **kwargs}
        super().__init__(message, code=code, details=details)


class APITimeoutError(APIError):
    """Request timed out."""

    def __init__(self, url: str, timeout: float):
        super().__init__(
            f"Request timed out after {timeout}s: {url}",
            code="API_TIMEOUT", url=url, timeout=timeout,
        )


class APIRateLimitError(APIError):
    """Rate limit still in force after all retries were spent."""

    def __init__(self, url: str, attempts: int, retry_after: float = None):
        msg = f"Rate limit exceeded after {attempts} attempts: {url}"
        if retry_after:
            msg += f" (retry after {retry_after}s)"
        super().__init__(
            msg, code="API_RATE_LIMIT", status_code=429, url=url,
            attempts=attempts, retry_after=retry_after,
        )


class APIAuthError(APIError):
    """Authentication or authorization failure."""

    def __init__(self, url: str, status_code: int = 401):
        super().__init__(
            f"Authentication failed: {url}",
            code="API_AUTH_FAILED", url=url, status_code=status_code,
        )


class APIResponseError(APIError):
    """Response body was not the JSON object the endpoint promises."""

    def __init__(self, url: str, reason: str):
        super().__init__(
            f"Malformed response from {url}: {reason}",
            code="API_MALFORMED_RESPONSE", url=url, reason=reason,
        )


# --- Data Errors ---

class DataError(HubError):
    """Base class for data processing errors."""
    pass


class ConfigError(DataError):
    """Missing or invalid configuration."""

    def __init__(self, message: str, variable: str = None):
        super().__init__(
            message, code="CONFIG_ERROR",
            details={"variable": variable},
        )
