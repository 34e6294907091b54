"""Error taxonomy shared by the handlers, the dispatcher and the HTTP layer.

Only InputValidationError, RateLimitExceeded and AllProvidersFailedError ever
reach a client, and the last one only as a generic message. ProviderError and
ParseError stay inside the dispatcher and the logs.
"""

from __future__ import annotations

from typing import List, Optional

GENERIC_FAILURE_MESSAGE = "Failed to analyze text."
RATE_LIMIT_MESSAGE = "Take a deep breath. You are refining too fast."


class TactError(Exception):
    """Base class for every error raised on purpose by this service."""

    status_code: int = 500
    public_message: str = GENERIC_FAILURE_MESSAGE


class InputValidationError(TactError):
    """User input was empty, oversized or missing a required field."""

    status_code = 400

    def __init__(self, message: str) -> None:
        self.public_message = message
        super().__init__(message)


class RateLimitExceeded(TactError):
    status_code = 429
    public_message = RATE_LIMIT_MESSAGE

    def __init__(self, bucket: str, remaining: int = 0, reset_ts: int = 0) -> None:
        self.bucket = bucket
        self.remaining = remaining
        self.reset_ts = reset_ts
        super().__init__(f"rate limit exceeded for bucket={bucket}")


class ProviderError(TactError):
    """One vendor call failed: network, timeout, non-2xx, empty body or no credentials."""

    def __init__(self, provider: str, cause: str) -> None:
        self.provider = provider
        self.cause = cause
        super().__init__(f"[{provider}] {cause}")


class ParseError(TactError):
    """No JSON object could be pulled out of a model response."""

    def __init__(self, raw_text: str, reason: str = "no JSON object found", provider: Optional[str] = None) -> None:
        self.raw_text = raw_text
        self.reason = reason
        self.provider = provider
        super().__init__(reason)


class AllProvidersFailedError(TactError):
    """Every attempt for one logical request failed; causes are kept for logging only."""

    def __init__(self, errors: Optional[List[TactError]] = None) -> None:
        self.errors: List[TactError] = list(errors or [])
        super().__init__(f"all providers failed after {len(self.errors)} attempt(s)")
