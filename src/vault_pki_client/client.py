from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Mapping

from asn1crypto import csr

from .auth import Credential, authenticate
from .config import AuthMethod, ClientParams
from .exceptions import (
    ProtocolError,
    SigningError,
    VaultRequestError,
    VaultTransportError,
)
from .logging_utils import get_logger
from .tls import TLSConfig, build_tls_config
from .transport import VaultTransport
from .x509_ops import csr_subject_fields, dump_csr_pem, load_certificate_signing_request


@dataclass(frozen=True)
class SignResult:
    """PEM material returned by the PKI engine for a signed intermediate."""

    ca_cert_pem: str
    ca_cert_chain_pem: str
    cert_pem: str
    serial_number: str | None = None


def _required_pem(data: Mapping[str, Any], name: str) -> str:
    value = data.get(name)
    if not isinstance(value, str) or not value.strip():
        raise ProtocolError(f"sign-intermediate response has no '{name}'.")
    return value


def _chain_pem(data: Mapping[str, Any]) -> str:
    value = data.get("ca_chain")
    if isinstance(value, list):
        parts = [str(item).strip() for item in value if str(item).strip()]
        if parts:
            return "\n".join(parts)
    elif isinstance(value, str) and value.strip():
        return value
    raise ProtocolError("sign-intermediate response has no 'ca_chain'.")


def parse_sign_response(body: Mapping[str, Any]) -> SignResult:
    data = body.get("data")
    if not isinstance(data, Mapping):
        raise ProtocolError("sign-intermediate response has no 'data' object.")
    serial = data.get("serial_number")
    return SignResult(
        ca_cert_pem=_required_pem(data, "issuing_ca"),
        ca_cert_chain_pem=_chain_pem(data),
        cert_pem=_required_pem(data, "certificate"),
        serial_number=serial if isinstance(serial, str) else None,
    )


class AuthenticatedClient:
    """
    Vault client holding one credential; exposes the PKI signing call.

    Instances are never re-authenticated. When the credential is not
    reusable, ask the ClientConfig for a new client per operation.
    """

    def __init__(
        self,
        params: ClientParams,
        transport: VaultTransport,
        credential: Credential,
        *,
        logger: logging.Logger,
    ) -> None:
        self._params = params
        self._transport = transport
        self._credential = credential
        self._logger = logger

    def __enter__(self) -> "AuthenticatedClient":
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()

    @property
    def credential(self) -> Credential:
        return self._credential

    @property
    def reusable(self) -> bool:
        return self._credential.reusable

    def close(self) -> None:
        self._transport.close()

    def sign_intermediate(
        self,
        ttl: str,
        request: csr.CertificationRequest | bytes | str,
    ) -> SignResult:
        """
        Have the PKI engine sign an intermediate CA CSR.

        ``ttl`` is a Vault duration string; "0" lets the engine pick its
        default. ``request`` may be a parsed CSR or PEM/DER data.
        """
        if not isinstance(request, csr.CertificationRequest):
            try:
                request = load_certificate_signing_request(request)
            except (ValueError, TypeError) as exc:
                raise ProtocolError(f"Invalid certificate signing request: {exc}") from exc

        payload = {
            **csr_subject_fields(request).to_request_fields(),
            "csr": dump_csr_pem(request).decode("ascii"),
            "ttl": ttl,
        }
        path = f"{self._params.pki_mount_point}/root/sign-intermediate"
        self._logger.info(
            "Requesting intermediate signature (mount=%s, ttl=%s, common_name=%s)",
            self._params.pki_mount_point,
            ttl,
            payload["common_name"],
        )
        try:
            body = self._transport.request(
                "POST", path, token=self._credential.token, payload=payload
            )
        except VaultRequestError as exc:
            self._logger.error("sign-intermediate rejected with HTTP %d.", exc.status_code)
            raise SigningError(exc.status_code, exc.errors) from exc
        except VaultTransportError as exc:
            self._logger.exception("sign-intermediate request failed.")
            raise SigningError(None, message=str(exc)) from exc

        result = parse_sign_response(body)
        self._logger.info(
            "Intermediate signed (serial_number=%s)", result.serial_number or "unknown"
        )
        return result


class ClientConfig:
    """
    Validated, immutable factory for authenticated Vault clients.

    Safe to share between threads; every authenticated client gets its own
    HTTP session.
    """

    def __init__(
        self,
        params: ClientParams,
        tls: TLSConfig,
        *,
        logger: logging.Logger | None = None,
    ) -> None:
        self._params = params
        self._tls = tls
        self._host_logger = logger
        self._logger = get_logger("client", logger)

    @property
    def params(self) -> ClientParams:
        return self._params

    @property
    def tls(self) -> TLSConfig:
        return self._tls

    @property
    def max_retries(self) -> int:
        return self._params.max_retries or 0

    def new_transport(self) -> VaultTransport:
        return VaultTransport(
            self._params, self._tls, logger=get_logger("transport", self._host_logger)
        )

    def new_authenticated_client(
        self, method: AuthMethod | str
    ) -> tuple[AuthenticatedClient, bool]:
        """
        Authenticate with ``method`` and return the client plus its reusability.
        """
        resolved = AuthMethod.parse(method)
        transport = self.new_transport()
        try:
            credential = authenticate(
                resolved,
                self._params,
                transport,
                logger=get_logger("auth", self._host_logger),
            )
        except Exception:
            transport.close()
            raise
        client = AuthenticatedClient(
            self._params, transport, credential, logger=self._logger
        )
        return client, credential.reusable


def new_client_config(
    params: ClientParams,
    logger: logging.Logger | None = None,
) -> ClientConfig:
    """
    Validate ``params``, apply default mount points and build the TLS config.

    All configuration errors surface here, before any network call.
    """
    params.validate()
    resolved = params.with_defaults()
    tls = build_tls_config(resolved, logger=get_logger("tls", logger))
    log = get_logger("client", logger)
    log.info(
        "Vault client configured (addr=%s, pki_mount=%s, cert_mount=%s, "
        "approle_mount=%s, max_retries=%d, mtls=%s)",
        resolved.vault_addr,
        resolved.pki_mount_point,
        resolved.cert_auth_mount_point,
        resolved.approle_auth_mount_point,
        resolved.max_retries,
        tls.presents_client_certificate,
    )
    return ClientConfig(resolved, tls, logger=logger)
