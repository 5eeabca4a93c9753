from __future__ import annotations

from typing import Sequence


class VaultClientError(RuntimeError):
    """Base client error."""


class VaultConfigurationError(VaultClientError):
    """Configuration is invalid or incomplete."""


class TLSConfigError(VaultClientError):
    """Trust material or client certificate pairing is unusable."""


class ProtocolError(VaultClientError):
    """The service answered, but the payload is missing expected fields."""


class VaultTransportError(VaultClientError):
    """The request never produced an HTTP response (after retries)."""


class VaultRequestError(VaultClientError):
    """The service answered with a non-2xx status (after retries)."""

    def __init__(self, status_code: int, errors: Sequence[str] = ()) -> None:
        self.status_code = status_code
        self.errors = tuple(errors)
        detail = "; ".join(self.errors) if self.errors else "no error details"
        super().__init__(f"HTTP {status_code}: {detail}")


class AuthenticationError(VaultClientError):
    """Login with the selected auth method failed."""

    def __init__(self, method: object, message: str) -> None:
        self.method = method
        super().__init__(f"{method} authentication failed: {message}")


class SigningError(VaultClientError):
    """The PKI engine rejected a signing request."""

    def __init__(
        self,
        status_code: int | None,
        errors: Sequence[str] = (),
        message: str | None = None,
    ) -> None:
        self.status_code = status_code
        self.errors = tuple(errors)
        if message is None:
            detail = "; ".join(self.errors) if self.errors else "no error details"
            message = f"HTTP {status_code}: {detail}"
        super().__init__(f"sign-intermediate failed: {message}")
