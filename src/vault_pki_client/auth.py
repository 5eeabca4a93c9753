from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping

from .config import AuthMethod, ClientParams
from .exceptions import (
    AuthenticationError,
    ProtocolError,
    VaultRequestError,
    VaultTransportError,
)
from .transport import VaultTransport

_logger = logging.getLogger("vault_pki_client.auth")


@dataclass(frozen=True)
class TokenMetadata:
    """Token and lease details returned by a login or lookup-self call."""

    token: str = field(repr=False)
    renewable: bool
    ttl: int

    @property
    def never_expires(self) -> bool:
        return self.ttl == 0


@dataclass(frozen=True)
class Credential:
    """
    Bearer token obtained by one authentication run.

    ``reusable`` tells callers whether the token may be held across several
    signing calls or must be thrown away after one.
    """

    method: AuthMethod
    token: str = field(repr=False)
    reusable: bool
    renewable: bool
    ttl: int


def is_reusable(metadata: TokenMetadata) -> bool:
    return metadata.renewable or metadata.never_expires


def _parse_renewable(value: Any) -> bool:
    if value is None:
        return False
    if not isinstance(value, bool):
        raise ProtocolError(f"'renewable' must be a boolean, got: {value!r}")
    return value


def _parse_ttl(value: Any, name: str) -> int:
    if value is None:
        return 0
    if isinstance(value, bool):
        raise ProtocolError(f"'{name}' must be a number of seconds, got: {value!r}")
    if isinstance(value, int):
        ttl = value
    elif isinstance(value, float) and value.is_integer():
        ttl = int(value)
    elif isinstance(value, str) and value.strip().isdigit():
        ttl = int(value.strip())
    else:
        raise ProtocolError(f"'{name}' must be a number of seconds, got: {value!r}")
    if ttl < 0:
        raise ProtocolError(f"'{name}' must be >= 0, got: {ttl}")
    return ttl


def _section(body: Mapping[str, Any], name: str) -> Mapping[str, Any]:
    section = body.get(name)
    if not isinstance(section, Mapping):
        raise ProtocolError(f"Response has no '{name}' object.")
    return section


def parse_login_response(body: Mapping[str, Any]) -> TokenMetadata:
    """Read the ``auth`` block shared by cert and approle logins."""
    auth = _section(body, "auth")
    token = auth.get("client_token")
    if not isinstance(token, str) or not token:
        raise ProtocolError("Login response has no client_token.")
    return TokenMetadata(
        token=token,
        renewable=_parse_renewable(auth.get("renewable")),
        ttl=_parse_ttl(auth.get("lease_duration"), "lease_duration"),
    )


def parse_lookup_self_response(body: Mapping[str, Any], token: str) -> TokenMetadata:
    data = _section(body, "data")
    return TokenMetadata(
        token=token,
        renewable=_parse_renewable(data.get("renewable")),
        ttl=_parse_ttl(data.get("ttl"), "ttl"),
    )


def _login_cert(params: ClientParams, transport: VaultTransport) -> TokenMetadata:
    if not transport.tls.presents_client_certificate:
        raise AuthenticationError(
            AuthMethod.CERT, "client certificate and key must be configured"
        )
    payload = {"name": params.cert_auth_role_name} if params.cert_auth_role_name else {}
    body = transport.request(
        "POST", f"auth/{params.cert_auth_mount_point}/login", payload=payload
    )
    return parse_login_response(body)


def _lookup_token(params: ClientParams, transport: VaultTransport) -> TokenMetadata:
    if not params.token:
        raise AuthenticationError(AuthMethod.TOKEN, "token must be configured")
    body = transport.request("GET", "auth/token/lookup-self", token=params.token)
    return parse_lookup_self_response(body, params.token)


def _login_approle(params: ClientParams, transport: VaultTransport) -> TokenMetadata:
    if not params.approle_id or not params.approle_secret_id:
        raise AuthenticationError(
            AuthMethod.APPROLE, "approle role_id and secret_id must be configured"
        )
    body = transport.request(
        "POST",
        f"auth/{params.approle_auth_mount_point}/login",
        payload={"role_id": params.approle_id, "secret_id": params.approle_secret_id},
    )
    return parse_login_response(body)


_AUTHENTICATORS: dict[AuthMethod, Callable[[ClientParams, VaultTransport], TokenMetadata]] = {
    AuthMethod.CERT: _login_cert,
    AuthMethod.TOKEN: _lookup_token,
    AuthMethod.APPROLE: _login_approle,
}


def authenticate(
    method: AuthMethod,
    params: ClientParams,
    transport: VaultTransport,
    *,
    logger: logging.Logger | None = None,
) -> Credential:
    """
    Run the login protocol for ``method`` and classify the resulting token.

    ``params`` must already carry resolved mount points.
    """
    log = logger or _logger
    handler = _AUTHENTICATORS.get(method)
    if handler is None:
        raise AuthenticationError(method, "unsupported auth method")

    try:
        metadata = handler(params, transport)
    except AuthenticationError:
        log.error("%s authentication rejected before contacting Vault.", method)
        raise
    except VaultRequestError as exc:
        log.error("%s authentication failed with HTTP %d.", method, exc.status_code)
        raise AuthenticationError(method, str(exc)) from exc
    except (VaultTransportError, ProtocolError) as exc:
        log.exception("%s authentication failed.", method)
        raise AuthenticationError(method, str(exc)) from exc

    reusable = is_reusable(metadata)
    log.info(
        "%s authentication succeeded (renewable=%s, ttl=%ds, reusable=%s)",
        method,
        metadata.renewable,
        metadata.ttl,
        reusable,
    )
    return Credential(
        method=method,
        token=metadata.token,
        reusable=reusable,
        renewable=metadata.renewable,
        ttl=metadata.ttl,
    )
