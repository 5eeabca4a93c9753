"""Vault client that signs intermediate CA CSRs through the PKI engine."""

from .auth import Credential, TokenMetadata, authenticate, is_reusable
from .client import (
    AuthenticatedClient,
    ClientConfig,
    SignResult,
    new_client_config,
    parse_sign_response,
)
from .config import (
    DEFAULT_APPROLE_AUTH_MOUNT_POINT,
    DEFAULT_CERT_AUTH_MOUNT_POINT,
    DEFAULT_MAX_RETRIES,
    DEFAULT_PKI_MOUNT_POINT,
    AuthMethod,
    ClientParams,
)
from .exceptions import (
    AuthenticationError,
    ProtocolError,
    SigningError,
    TLSConfigError,
    VaultClientError,
    VaultConfigurationError,
    VaultRequestError,
    VaultTransportError,
)
from .logging_utils import configure_logging
from .tls import TLSConfig, build_tls_config
from .transport import VaultTransport, build_retry_policy
from .x509_ops import CsrSubjectFields, csr_subject_fields, load_certificate_signing_request

__all__ = [
    "DEFAULT_APPROLE_AUTH_MOUNT_POINT",
    "DEFAULT_CERT_AUTH_MOUNT_POINT",
    "DEFAULT_MAX_RETRIES",
    "DEFAULT_PKI_MOUNT_POINT",
    "AuthMethod",
    "AuthenticatedClient",
    "AuthenticationError",
    "ClientConfig",
    "ClientParams",
    "Credential",
    "CsrSubjectFields",
    "ProtocolError",
    "SignResult",
    "SigningError",
    "TLSConfig",
    "TLSConfigError",
    "TokenMetadata",
    "VaultClientError",
    "VaultConfigurationError",
    "VaultRequestError",
    "VaultTransport",
    "VaultTransportError",
    "authenticate",
    "build_retry_policy",
    "build_tls_config",
    "configure_logging",
    "csr_subject_fields",
    "is_reusable",
    "load_certificate_signing_request",
    "new_client_config",
    "parse_sign_response",
]
