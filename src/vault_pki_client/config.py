from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path
from urllib.parse import urlparse

from .exceptions import VaultConfigurationError

DEFAULT_PKI_MOUNT_POINT = "pki"
DEFAULT_CERT_AUTH_MOUNT_POINT = "cert"
DEFAULT_APPROLE_AUTH_MOUNT_POINT = "approle"
DEFAULT_MAX_RETRIES = 2
DEFAULT_RETRY_BACKOFF_FACTOR = 0.5
DEFAULT_TIMEOUT_SECONDS = 60.0


class AuthMethod(Enum):
    """Supported ways of obtaining a Vault token."""

    CERT = "cert"
    TOKEN = "token"
    APPROLE = "approle"

    def __str__(self) -> str:
        return self.name

    @classmethod
    def parse(cls, value: "str | AuthMethod") -> "AuthMethod":
        if isinstance(value, cls):
            return value
        normalized = str(value).strip().lower().replace("-", "").replace("_", "")
        for method in cls:
            if method.value == normalized:
                return method
        available = ", ".join(method.value for method in cls)
        raise VaultConfigurationError(
            f"Unsupported auth method '{value}'. Use one of: {available}."
        )


def _optional_env(name: str) -> str | None:
    value = os.environ.get(name)
    if value is None or not value.strip():
        return None
    return value.strip()


@dataclass(frozen=True)
class ClientParams:
    """
    Connection, trust and credential settings for one Vault client.

    Empty mount points fall back to the engine defaults. ``max_retries=None``
    means "library default"; ``0`` disables retries entirely.
    """

    vault_addr: str
    ca_cert_path: str | Path
    pki_mount_point: str = ""
    token: str | None = field(default=None, repr=False)
    client_cert_path: str | Path | None = None
    client_key_path: str | Path | None = None
    cert_auth_mount_point: str = ""
    cert_auth_role_name: str | None = None
    approle_id: str | None = None
    approle_secret_id: str | None = field(default=None, repr=False)
    approle_auth_mount_point: str = ""
    max_retries: int | None = None
    retry_backoff_factor: float = DEFAULT_RETRY_BACKOFF_FACTOR
    timeout: float = DEFAULT_TIMEOUT_SECONDS
    namespace: str | None = None

    def validate(self) -> None:
        parsed = urlparse(self.vault_addr or "")
        if parsed.scheme != "https" or not parsed.netloc:
            raise VaultConfigurationError(
                f"vault_addr must be an https:// URL, got: {self.vault_addr!r}"
            )
        if not self.ca_cert_path:
            raise VaultConfigurationError("ca_cert_path is required.")
        if self.max_retries is not None and self.max_retries < 0:
            raise VaultConfigurationError(
                f"max_retries must be >= 0, got: {self.max_retries}"
            )
        if self.retry_backoff_factor < 0:
            raise VaultConfigurationError("retry_backoff_factor must be >= 0.")
        if self.timeout <= 0:
            raise VaultConfigurationError("timeout must be > 0.")

    def with_defaults(self) -> "ClientParams":
        return replace(
            self,
            pki_mount_point=_mount(self.pki_mount_point, DEFAULT_PKI_MOUNT_POINT),
            cert_auth_mount_point=_mount(
                self.cert_auth_mount_point, DEFAULT_CERT_AUTH_MOUNT_POINT
            ),
            approle_auth_mount_point=_mount(
                self.approle_auth_mount_point, DEFAULT_APPROLE_AUTH_MOUNT_POINT
            ),
            max_retries=(
                DEFAULT_MAX_RETRIES if self.max_retries is None else self.max_retries
            ),
        )

    @classmethod
    def from_env(cls) -> "ClientParams":
        vault_addr = _optional_env("VAULT_ADDR")
        ca_cert_path = _optional_env("VAULT_CACERT")
        if not vault_addr:
            raise VaultConfigurationError("VAULT_ADDR is required.")
        if not ca_cert_path:
            raise VaultConfigurationError("VAULT_CACERT is required.")

        max_retries: int | None = None
        retries_raw = _optional_env("VAULT_MAX_RETRIES")
        if retries_raw is not None:
            try:
                max_retries = int(retries_raw)
            except ValueError as exc:
                raise VaultConfigurationError(
                    f"VAULT_MAX_RETRIES must be an integer, got: {retries_raw}"
                ) from exc

        timeout = DEFAULT_TIMEOUT_SECONDS
        timeout_raw = _optional_env("VAULT_CLIENT_TIMEOUT")
        if timeout_raw is not None:
            try:
                timeout = float(timeout_raw.rstrip("s"))
            except ValueError as exc:
                raise VaultConfigurationError(
                    f"VAULT_CLIENT_TIMEOUT must be a number of seconds, got: {timeout_raw}"
                ) from exc

        return cls(
            vault_addr=vault_addr,
            ca_cert_path=ca_cert_path,
            pki_mount_point=_optional_env("VAULT_PKI_MOUNT") or "",
            token=_optional_env("VAULT_TOKEN"),
            client_cert_path=_optional_env("VAULT_CLIENT_CERT"),
            client_key_path=_optional_env("VAULT_CLIENT_KEY"),
            cert_auth_mount_point=_optional_env("VAULT_CERT_AUTH_MOUNT") or "",
            cert_auth_role_name=_optional_env("VAULT_CERT_AUTH_ROLE"),
            approle_id=_optional_env("VAULT_APPROLE_ROLE_ID"),
            approle_secret_id=_optional_env("VAULT_APPROLE_SECRET_ID"),
            approle_auth_mount_point=_optional_env("VAULT_APPROLE_MOUNT") or "",
            max_retries=max_retries,
            timeout=timeout,
            namespace=_optional_env("VAULT_NAMESPACE"),
        )


def _mount(value: str, default: str) -> str:
    cleaned = (value or "").strip().strip("/")
    return cleaned or default
