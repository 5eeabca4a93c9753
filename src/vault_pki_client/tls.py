from __future__ import annotations

import logging
import ssl
from dataclasses import dataclass
from pathlib import Path

from asn1crypto import pem, x509
from urllib3.util.ssl_ import create_urllib3_context

from .config import ClientParams
from .exceptions import TLSConfigError
from .x509_ops import load_certificate, load_certificates_pem

CLIENT_PAIR_REQUIRED_MESSAGE = "both client cert and client key are required"

_logger = logging.getLogger("vault_pki_client.tls")


@dataclass(frozen=True)
class TLSConfig:
    """
    Validated trust material for talking to Vault.

    The CA pool is always present. The client certificate pair is only set
    when both paths were configured and they parsed as a matching pair.
    """

    ca_cert_path: Path
    ca_certificates: tuple[x509.Certificate, ...]
    client_cert_path: Path | None = None
    client_key_path: Path | None = None
    client_certificate: x509.Certificate | None = None

    @property
    def presents_client_certificate(self) -> bool:
        return self.client_certificate is not None

    @property
    def ca_bundle_pem(self) -> str:
        return "".join(
            pem.armor("CERTIFICATE", certificate.dump()).decode("ascii")
            for certificate in self.ca_certificates
        )

    def ssl_context(self) -> ssl.SSLContext:
        """
        Build a client context that trusts only the parsed CA pool.

        The client pair is loaded into the context when one is configured.
        """
        context = create_urllib3_context(cert_reqs=ssl.CERT_REQUIRED)
        context.load_verify_locations(cadata=self.ca_bundle_pem)
        if self.client_cert_path is not None and self.client_key_path is not None:
            context.load_cert_chain(
                certfile=str(self.client_cert_path), keyfile=str(self.client_key_path)
            )
        return context


def _read_file(path: Path, label: str) -> bytes:
    try:
        return path.read_bytes()
    except OSError as exc:
        raise TLSConfigError(f"Unable to read {label} {path}: {exc}") from exc


def load_ca_pool(
    ca_cert_path: str | Path,
    *,
    logger: logging.Logger | None = None,
) -> tuple[x509.Certificate, ...]:
    """
    Parse the CERTIFICATE blocks of a CA bundle.

    Blocks that do not parse are skipped with a warning. The bundle is only
    rejected when no certificate in it is usable.
    """
    log = logger or _logger
    path = Path(ca_cert_path)
    payload = _read_file(path, "CA certificate")
    if not pem.detect(payload):
        raise TLSConfigError(f"Invalid CA certificate {path}: no PEM data found")

    certificates: list[x509.Certificate] = []
    skipped = 0
    try:
        for pem_type, _headers, der_bytes in pem.unarmor(payload, multiple=True):
            if pem_type != "CERTIFICATE":
                continue
            try:
                certificates.append(load_certificate(der_bytes))
            except (ValueError, TypeError) as exc:
                skipped += 1
                log.warning("Skipping unparsable certificate in %s: %s", path, exc)
    except ValueError as exc:
        # Broken armor ends the scan; blocks read so far are kept.
        skipped += 1
        log.warning("Stopped reading CA bundle %s: %s", path, exc)

    if not certificates:
        raise TLSConfigError(
            f"Invalid CA certificate {path}: no valid certificate found"
            + (f" ({skipped} unparsable block(s))" if skipped else "")
        )
    return tuple(certificates)


def load_client_pair(
    client_cert_path: str | Path,
    client_key_path: str | Path,
) -> x509.Certificate:
    cert_path = Path(client_cert_path)
    key_path = Path(client_key_path)
    payload = _read_file(cert_path, "client certificate")
    try:
        certificate = load_certificates_pem(payload)[0]
    except (ValueError, TypeError) as exc:
        raise TLSConfigError(f"Invalid client certificate {cert_path}: {exc}") from exc

    # Same pairing check the TLS stack runs when the handshake needs the key.
    context = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
    try:
        context.load_cert_chain(certfile=str(cert_path), keyfile=str(key_path))
    except (ssl.SSLError, OSError) as exc:
        raise TLSConfigError(
            f"Client certificate {cert_path} and key {key_path} are not a usable pair: {exc}"
        ) from exc
    return certificate


def build_tls_config(
    params: ClientParams,
    *,
    logger: logging.Logger | None = None,
) -> TLSConfig:
    """Load the CA pool and optional client pair named by ``params``."""
    log = logger or _logger
    has_cert = bool(params.client_cert_path)
    has_key = bool(params.client_key_path)
    if has_cert != has_key:
        raise TLSConfigError(CLIENT_PAIR_REQUIRED_MESSAGE)

    ca_certificates = load_ca_pool(params.ca_cert_path, logger=log)
    log.debug(
        "Loaded %d CA certificate(s) from %s", len(ca_certificates), params.ca_cert_path
    )

    if not has_cert:
        return TLSConfig(
            ca_cert_path=Path(params.ca_cert_path),
            ca_certificates=ca_certificates,
        )

    client_certificate = load_client_pair(params.client_cert_path, params.client_key_path)
    log.debug(
        "Loaded client certificate subject=%s",
        client_certificate.subject.human_friendly,
    )
    return TLSConfig(
        ca_cert_path=Path(params.ca_cert_path),
        ca_certificates=ca_certificates,
        client_cert_path=Path(params.client_cert_path),
        client_key_path=Path(params.client_key_path),
        client_certificate=client_certificate,
    )
