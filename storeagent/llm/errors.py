"""Errors raised by model providers and the key manager."""


class ProviderError(Exception):
    """A model provider call failed.

    Attributes:
        status_code: HTTP status of the provider response, if any
        retry_after: Raw retry hint (header value or provider text), if any
        provider: Provider name
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        retry_after: str | None = None,
        provider: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.retry_after = retry_after
        self.provider = provider

    def __str__(self) -> str:
        if self.status_code is not None:
            return f"[{self.status_code}] {self.message}"
        return self.message


class KeysUnavailableError(Exception):
    """Every key of a company is cooling down or disabled."""

    def __init__(self, message: str, retry_after_seconds: int | None = None) -> None:
        super().__init__(message)
        self.retry_after_seconds = retry_after_seconds
