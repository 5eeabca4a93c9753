from __future__ import annotations

import argparse
import json
import sys
from dataclasses import asdict
from pathlib import Path

if __package__ in (None, ""):
    repo_src = Path(__file__).resolve().parents[1] / "src"
    if str(repo_src) not in sys.path:
        sys.path.insert(0, str(repo_src))

from vault_pki_client import (
    AuthMethod,
    ClientParams,
    VaultClientError,
    configure_logging,
    new_client_config,
)


class _HelpFormatter(
    argparse.RawTextHelpFormatter,
    argparse.ArgumentDefaultsHelpFormatter,
):
    """Keep multiline examples readable and include defaults."""


CLI_HELP_EPILOG = """Environment:
  Required:
    VAULT_ADDR                 https://vault.example.org:8200
    VAULT_CACERT               CA bundle that signed the Vault listener

  Per auth method:
    cert:     VAULT_CLIENT_CERT, VAULT_CLIENT_KEY [, VAULT_CERT_AUTH_ROLE]
    token:    VAULT_TOKEN
    approle:  VAULT_APPROLE_ROLE_ID, VAULT_APPROLE_SECRET_ID

  Optional:
    VAULT_PKI_MOUNT, VAULT_CERT_AUTH_MOUNT, VAULT_APPROLE_MOUNT
    VAULT_MAX_RETRIES (0 disables retries), VAULT_CLIENT_TIMEOUT, VAULT_NAMESPACE

Examples:
  # Check that a method can log in and whether its token may be cached
  python3 examples/vault_pki_cli.py --auth-method cert login

  # Have the PKI engine sign an intermediate CA CSR
  python3 examples/vault_pki_cli.py --auth-method approle sign-intermediate --csr-file intermediate.csr.pem --ttl 8760h --out-dir ./intermediate
"""


def _write_text_output(payload: str, out_path: Path | None, label: str) -> None:
    if out_path is None:
        print(payload)
        return
    out_path.parent.mkdir(parents=True, exist_ok=True)
    out_path.write_text(payload, encoding="utf-8")
    print(f"Wrote {label} to: {out_path}")


def _read_csr(path: str) -> str:
    source = Path(path)
    if not source.exists():
        raise ValueError(f"File does not exist: {source}")
    if not source.is_file():
        raise ValueError(f"Path is not a file: {source}")
    return source.read_text(encoding="utf-8")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description=(
            "Authenticate to Vault (cert, token or approle) and sign "
            "intermediate CA CSRs through the PKI engine."
        ),
        formatter_class=_HelpFormatter,
        epilog=CLI_HELP_EPILOG,
    )
    parser.add_argument(
        "--auth-method",
        choices=[method.value for method in AuthMethod],
        default=AuthMethod.CERT.value,
        help="Vault auth method used to obtain a token.",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Override VAULT_PKI_CLIENT_LOG_LEVEL.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser(
        "login",
        help="Authenticate and report token reusability.",
        formatter_class=_HelpFormatter,
    )

    sign = subparsers.add_parser(
        "sign-intermediate",
        help="Sign an intermediate CA CSR.",
        formatter_class=_HelpFormatter,
    )
    sign.add_argument("--csr-file", required=True, help="PEM CSR to sign.")
    sign.add_argument(
        "--ttl",
        default="0",
        help='Requested certificate TTL; "0" uses the PKI role default.',
    )
    sign.add_argument(
        "--out-dir",
        default=None,
        help="Write cert.pem, ca.pem and chain.pem here instead of printing JSON.",
    )
    return parser


def _run_login(method: AuthMethod) -> None:
    config = new_client_config(ClientParams.from_env())
    client, reusable = config.new_authenticated_client(method)
    with client:
        credential = client.credential
        payload = {
            "auth_method": method.value,
            "renewable": credential.renewable,
            "ttl_seconds": credential.ttl,
            "reusable": reusable,
        }
    print(json.dumps(payload, indent=2, sort_keys=True))


def _run_sign_intermediate(method: AuthMethod, args: argparse.Namespace) -> None:
    csr_pem = _read_csr(args.csr_file)
    config = new_client_config(ClientParams.from_env())
    client, _reusable = config.new_authenticated_client(method)
    with client:
        result = client.sign_intermediate(args.ttl, csr_pem)

    if args.out_dir is None:
        print(json.dumps(asdict(result), indent=2, sort_keys=True))
        return
    out_dir = Path(args.out_dir)
    _write_text_output(result.cert_pem, out_dir / "cert.pem", "signed certificate")
    _write_text_output(result.ca_cert_pem, out_dir / "ca.pem", "issuing CA")
    _write_text_output(result.ca_cert_chain_pem, out_dir / "chain.pem", "CA chain")


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    try:
        configure_logging(level=args.log_level)
        method = AuthMethod.parse(args.auth_method)

        if args.command == "login":
            _run_login(method)
            return 0

        if args.command == "sign-intermediate":
            _run_sign_intermediate(method, args)
            return 0

        raise ValueError("Unsupported command.")
    except (VaultClientError, ValueError) as exc:
        print(f"Vault PKI CLI error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
