from __future__ import annotations

import ipaddress
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Iterator

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import ExtendedKeyUsageOID, NameOID

from fake_vault import FakeVaultServer, PkiMaterial

INVALID_PEM = (
    "-----BEGIN CERTIFICATE-----\n"
    "bm90IGEgY2VydGlmaWNhdGUgYXQgYWxs\n"
    "-----END CERTIFICATE-----\n"
)


def _name(common_name: str) -> x509.Name:
    return x509.Name(
        [
            x509.NameAttribute(NameOID.COMMON_NAME, common_name),
            x509.NameAttribute(NameOID.ORGANIZATION_NAME, "vault-pki-client tests"),
        ]
    )


def _key_usage(*, ca: bool) -> x509.KeyUsage:
    return x509.KeyUsage(
        digital_signature=True,
        content_commitment=False,
        key_encipherment=False,
        data_encipherment=False,
        key_agreement=False,
        key_cert_sign=ca,
        crl_sign=ca,
        encipher_only=False,
        decipher_only=False,
    )


def _issue(
    *,
    common_name: str,
    subject_key: ec.EllipticCurvePrivateKey,
    issuer_key: ec.EllipticCurvePrivateKey,
    issuer_name: x509.Name | None = None,
    ca: bool = False,
    extensions: list[tuple[x509.ExtensionType, bool]] | None = None,
) -> x509.Certificate:
    now = datetime.now(timezone.utc)
    subject = _name(common_name)
    builder = (
        x509.CertificateBuilder()
        .subject_name(subject)
        .issuer_name(issuer_name or subject)
        .public_key(subject_key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - timedelta(minutes=5))
        .not_valid_after(now + timedelta(days=1))
        .add_extension(x509.BasicConstraints(ca=ca, path_length=None), critical=True)
        .add_extension(_key_usage(ca=ca), critical=True)
        .add_extension(
            x509.SubjectKeyIdentifier.from_public_key(subject_key.public_key()),
            critical=False,
        )
        .add_extension(
            x509.AuthorityKeyIdentifier.from_issuer_public_key(issuer_key.public_key()),
            critical=False,
        )
    )
    for extension, critical in extensions or []:
        builder = builder.add_extension(extension, critical=critical)
    return builder.sign(issuer_key, hashes.SHA256())


def _write_cert(path: Path, certificate: x509.Certificate) -> Path:
    path.write_bytes(certificate.public_bytes(serialization.Encoding.PEM))
    return path


def _write_key(path: Path, key: ec.EllipticCurvePrivateKey) -> Path:
    path.write_bytes(
        key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption(),
        )
    )
    return path


@pytest.fixture(scope="session")
def pki(tmp_path_factory: pytest.TempPathFactory) -> PkiMaterial:
    keys_dir = tmp_path_factory.mktemp("keys")

    root_key = ec.generate_private_key(ec.SECP256R1())
    root_cert = _issue(
        common_name="Test Root CA",
        subject_key=root_key,
        issuer_key=root_key,
        ca=True,
    )

    server_key = ec.generate_private_key(ec.SECP256R1())
    server_cert = _issue(
        common_name="localhost",
        subject_key=server_key,
        issuer_key=root_key,
        issuer_name=root_cert.subject,
        extensions=[
            (
                x509.SubjectAlternativeName(
                    [
                        x509.DNSName("localhost"),
                        x509.IPAddress(ipaddress.ip_address("127.0.0.1")),
                    ]
                ),
                False,
            ),
            (x509.ExtendedKeyUsage([ExtendedKeyUsageOID.SERVER_AUTH]), False),
        ],
    )

    client_key = ec.generate_private_key(ec.SECP256R1())
    client_cert = _issue(
        common_name="upstream-authority",
        subject_key=client_key,
        issuer_key=root_key,
        issuer_name=root_cert.subject,
        extensions=[(x509.ExtendedKeyUsage([ExtendedKeyUsageOID.CLIENT_AUTH]), False)],
    )

    intermediate_key = ec.generate_private_key(ec.SECP256R1())
    intermediate_csr = (
        x509.CertificateSigningRequestBuilder()
        .subject_name(
            x509.Name(
                [
                    x509.NameAttribute(NameOID.COUNTRY_NAME, "US"),
                    x509.NameAttribute(NameOID.ORGANIZATION_NAME, "SPIFFE"),
                    x509.NameAttribute(NameOID.COMMON_NAME, "Intermediate CA"),
                ]
            )
        )
        .add_extension(
            x509.SubjectAlternativeName(
                [x509.UniformResourceIdentifier("spiffe://example.org")]
            ),
            critical=False,
        )
        .add_extension(x509.BasicConstraints(ca=True, path_length=None), critical=True)
        .sign(intermediate_key, hashes.SHA256())
    )
    csr_path = keys_dir / "intermediate_csr.pem"
    csr_path.write_bytes(intermediate_csr.public_bytes(serialization.Encoding.PEM))

    invalid_root = keys_dir / "invalid_root_cert.pem"
    invalid_root.write_text(INVALID_PEM, encoding="utf-8")
    invalid_client_cert = keys_dir / "invalid_client_cert.pem"
    invalid_client_cert.write_text(INVALID_PEM, encoding="utf-8")

    return PkiMaterial(
        root_cert=_write_cert(keys_dir / "root_cert.pem", root_cert),
        invalid_root_cert=invalid_root,
        server_cert=_write_cert(keys_dir / "server_cert.pem", server_cert),
        server_key=_write_key(keys_dir / "server_key.pem", server_key),
        client_cert=_write_cert(keys_dir / "client_cert.pem", client_cert),
        client_key=_write_key(keys_dir / "client_key.pem", client_key),
        invalid_client_cert=invalid_client_cert,
        # A well-formed key that does not belong to the client certificate.
        invalid_client_key=_write_key(
            keys_dir / "invalid_client_key.pem", ec.generate_private_key(ec.SECP256R1())
        ),
        intermediate_csr=csr_path,
    )


@pytest.fixture
def fake_vault(pki: PkiMaterial) -> Iterator[FakeVaultServer]:
    server = FakeVaultServer(
        server_cert=pki.server_cert,
        server_key=pki.server_key,
        ca_cert=pki.root_cert,
    )
    server.start()
    try:
        yield server
    finally:
        server.stop()
