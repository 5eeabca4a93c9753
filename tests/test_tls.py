from __future__ import annotations

import logging
from pathlib import Path

import pytest

from fake_vault import LOOKUP_SELF, FakeVaultServer, PkiMaterial, lookup_self_response
from vault_pki_client import (
    AuthMethod,
    ClientParams,
    TLSConfigError,
    build_tls_config,
    new_client_config,
)
from vault_pki_client.x509_ops import load_certificates_pem

ADDR = "https://example.org:8200"


def _params(**overrides: object) -> ClientParams:
    values: dict[str, object] = {"vault_addr": ADDR}
    values.update(overrides)
    return ClientParams(**values)


def test_build_with_client_pair_loads_pair_and_ca_pool(pki: PkiMaterial) -> None:
    tls = build_tls_config(
        _params(
            ca_cert_path=pki.root_cert,
            client_cert_path=pki.client_cert,
            client_key_path=pki.client_key,
        )
    )

    expected_client = load_certificates_pem(pki.client_cert.read_bytes())[0]
    expected_pool = load_certificates_pem(pki.root_cert.read_bytes())
    assert tls.presents_client_certificate
    assert tls.client_certificate.dump() == expected_client.dump()
    assert [cert.dump() for cert in tls.ca_certificates] == [
        cert.dump() for cert in expected_pool
    ]
    assert tls.client_cert_path == pki.client_cert
    assert tls.client_key_path == pki.client_key
    assert len(tls.ssl_context().get_ca_certs()) == 1


@pytest.mark.parametrize("credentials", ["token", "approle"])
def test_build_without_client_pair_is_anonymous(
    pki: PkiMaterial, credentials: str
) -> None:
    if credentials == "token":
        params = _params(ca_cert_path=pki.root_cert, token="test-token")
    else:
        params = _params(
            ca_cert_path=pki.root_cert,
            approle_id="test-approle-id",
            approle_secret_id="test-approle-secret",
        )

    tls = build_tls_config(params)

    assert not tls.presents_client_certificate
    assert tls.client_certificate is None
    assert tls.client_cert_path is None
    assert len(tls.ca_certificates) == 1


@pytest.mark.parametrize("with_client_pair", [True, False])
def test_build_fails_on_invalid_ca_cert(pki: PkiMaterial, with_client_pair: bool) -> None:
    overrides: dict[str, object] = {"ca_cert_path": pki.invalid_root_cert}
    if with_client_pair:
        overrides.update(client_cert_path=pki.client_cert, client_key_path=pki.client_key)

    with pytest.raises(TLSConfigError, match="Invalid CA certificate"):
        build_tls_config(_params(**overrides))


def test_build_fails_on_missing_ca_file(pki: PkiMaterial, tmp_path: Path) -> None:
    with pytest.raises(TLSConfigError, match="Unable to read CA certificate"):
        build_tls_config(_params(ca_cert_path=tmp_path / "missing.pem"))


def test_build_fails_on_ca_file_without_certificates(tmp_path: Path) -> None:
    ca_file = tmp_path / "empty.pem"
    ca_file.write_text("just some text\n", encoding="utf-8")

    with pytest.raises(TLSConfigError):
        build_tls_config(_params(ca_cert_path=ca_file))


def test_build_fails_on_mismatched_client_key(pki: PkiMaterial) -> None:
    with pytest.raises(TLSConfigError, match="not a usable pair"):
        build_tls_config(
            _params(
                ca_cert_path=pki.root_cert,
                client_cert_path=pki.client_cert,
                client_key_path=pki.invalid_client_key,
            )
        )


def test_build_fails_on_invalid_client_cert(pki: PkiMaterial) -> None:
    with pytest.raises(TLSConfigError, match="Invalid client certificate"):
        build_tls_config(
            _params(
                ca_cert_path=pki.root_cert,
                client_cert_path=pki.invalid_client_cert,
                client_key_path=pki.client_key,
            )
        )


@pytest.mark.parametrize("present", ["cert", "key"])
def test_build_requires_client_cert_and_key_together(
    pki: PkiMaterial, present: str
) -> None:
    overrides: dict[str, object] = {"ca_cert_path": pki.root_cert}
    if present == "cert":
        overrides["client_cert_path"] = pki.client_cert
    else:
        overrides["client_key_path"] = pki.client_key

    with pytest.raises(TLSConfigError) as excinfo:
        build_tls_config(_params(**overrides))

    assert str(excinfo.value) == "both client cert and client key are required"


def test_new_client_config_surfaces_tls_errors(pki: PkiMaterial) -> None:
    params = _params(ca_cert_path=pki.root_cert, client_cert_path=pki.client_cert)

    with pytest.raises(TLSConfigError, match="both client cert and client key are required"):
        new_client_config(params)


def _bundle_with_broken_block(pki: PkiMaterial, tmp_path: Path) -> Path:
    bundle = tmp_path / "bundle.pem"
    bundle.write_text(
        pki.invalid_root_cert.read_text(encoding="utf-8")
        + pki.root_cert.read_text(encoding="utf-8"),
        encoding="utf-8",
    )
    return bundle


def test_ca_bundle_skips_unparsable_blocks(
    pki: PkiMaterial, tmp_path: Path, caplog: pytest.LogCaptureFixture
) -> None:
    bundle = _bundle_with_broken_block(pki, tmp_path)

    host = logging.getLogger("tests.ca_bundle")
    with caplog.at_level(logging.WARNING):
        tls = build_tls_config(_params(ca_cert_path=bundle), logger=host)

    expected_pool = load_certificates_pem(pki.root_cert.read_bytes())
    assert [cert.dump() for cert in tls.ca_certificates] == [
        cert.dump() for cert in expected_pool
    ]
    assert [cert.dump() for cert in load_certificates_pem(tls.ca_bundle_pem)] == [
        cert.dump() for cert in expected_pool
    ]
    assert len(tls.ssl_context().get_ca_certs()) == 1
    assert [record.name for record in caplog.records] == ["tests.ca_bundle"]
    assert "Skipping unparsable certificate" in caplog.text


@pytest.mark.integration
def test_connections_trust_the_parsed_pool(
    pki: PkiMaterial,
    fake_vault: FakeVaultServer,
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    # An environment bundle must not replace or extend the configured pool.
    monkeypatch.setenv("REQUESTS_CA_BUNDLE", str(tmp_path / "missing-bundle.pem"))
    fake_vault.respond(LOOKUP_SELF, 200, lookup_self_response(renewable=True, ttl=3600))
    cc = new_client_config(
        ClientParams(
            vault_addr=fake_vault.address,
            ca_cert_path=_bundle_with_broken_block(pki, tmp_path),
            token="test-token",
        )
    )

    client, reusable = cc.new_authenticated_client(AuthMethod.TOKEN)
    client.close()

    assert reusable is True
    assert fake_vault.hits(LOOKUP_SELF) == 1
