from __future__ import annotations

from dataclasses import dataclass

from asn1crypto import csr, pem, x509


@dataclass(frozen=True)
class CsrSubjectFields:
    """
    Subject values copied from a CSR into a sign-intermediate request.

    Multi-valued attributes are kept in CSR order.
    """

    common_name: str = ""
    organizations: tuple[str, ...] = ()
    countries: tuple[str, ...] = ()
    uri_sans: tuple[str, ...] = ()

    def to_request_fields(self) -> dict[str, str]:
        return {
            "common_name": self.common_name,
            "organization": ",".join(self.organizations),
            "country": ",".join(self.countries),
            "uri_sans": ",".join(self.uri_sans),
        }


def _to_bytes(data: bytes | str) -> bytes:
    if isinstance(data, str):
        return data.encode("utf-8")
    return data


def _load_pem_or_der(data: bytes | str, expected_pem_type: str) -> bytes:
    payload = _to_bytes(data)
    if pem.detect(payload):
        pem_type, _headers, der_bytes = pem.unarmor(payload)
        if pem_type != expected_pem_type:
            raise ValueError(
                f"Expected PEM type '{expected_pem_type}', received '{pem_type}'."
            )
        return der_bytes
    return payload


def load_certificate(data: bytes | str) -> x509.Certificate:
    certificate = x509.Certificate.load(_load_pem_or_der(data, "CERTIFICATE"), strict=True)
    # asn1crypto parses lazily; touch every field so corrupt DER fails here.
    certificate.native
    return certificate


def load_certificates_pem(data: bytes | str) -> tuple[x509.Certificate, ...]:
    """
    Parse every CERTIFICATE block of a PEM bundle.

    Raises ValueError when the payload is not PEM or holds no certificate.
    """
    payload = _to_bytes(data)
    if not pem.detect(payload):
        raise ValueError("No PEM data found.")

    certificates: list[x509.Certificate] = []
    for pem_type, _headers, der_bytes in pem.unarmor(payload, multiple=True):
        if pem_type != "CERTIFICATE":
            continue
        certificates.append(load_certificate(der_bytes))
    if not certificates:
        raise ValueError("No CERTIFICATE blocks found in PEM data.")
    return tuple(certificates)


def load_certificate_signing_request(data: bytes | str) -> csr.CertificationRequest:
    request = csr.CertificationRequest.load(
        _load_pem_or_der(data, "CERTIFICATE REQUEST"), strict=True
    )
    request.native
    return request


def dump_csr_pem(request: csr.CertificationRequest) -> bytes:
    return pem.armor("CERTIFICATE REQUEST", request.dump())


def get_requested_extensions(
    request: csr.CertificationRequest,
) -> x509.Extensions:
    attributes = request["certification_request_info"]["attributes"]
    for attribute in attributes:
        if attribute["type"].native != "extension_request":
            continue
        values = attribute["values"]
        if len(values) > 0:
            return values[0]
    return x509.Extensions([])


def _as_tuple(value: object) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        return (value,) if value.strip() else ()
    return tuple(str(item) for item in value if str(item).strip())


def requested_uri_sans(request: csr.CertificationRequest) -> tuple[str, ...]:
    uris: list[str] = []
    for extension in get_requested_extensions(request):
        if extension["extn_id"].native != "subject_alt_name":
            continue
        for general_name in extension["extn_value"].parsed:
            if general_name.name == "uniform_resource_identifier":
                uris.append(general_name.native)
    return tuple(uris)


def csr_subject_fields(request: csr.CertificationRequest) -> CsrSubjectFields:
    native = request["certification_request_info"]["subject"].native
    common_names = _as_tuple(native.get("common_name"))
    return CsrSubjectFields(
        common_name=common_names[0] if common_names else "",
        organizations=_as_tuple(native.get("organization_name")),
        countries=_as_tuple(native.get("country_name")),
        uri_sans=requested_uri_sans(request),
    )
