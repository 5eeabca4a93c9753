from __future__ import annotations

import json
import logging
import ssl
from typing import Any, Mapping

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from .config import ClientParams
from .exceptions import ProtocolError, VaultRequestError, VaultTransportError
from .tls import TLSConfig

RETRY_STATUS_CODES = frozenset(range(500, 600))


def build_retry_policy(max_retries: int, backoff_factor: float) -> Retry:
    """
    Retry transport failures and 5xx answers, for every HTTP verb.

    4xx answers are final. The last 5xx response is handed back instead of
    raising so callers can report the service's error body.
    """
    return Retry(
        total=max_retries,
        backoff_factor=backoff_factor,
        status_forcelist=RETRY_STATUS_CODES,
        allowed_methods=None,
        respect_retry_after_header=False,
        raise_on_status=False,
        raise_on_redirect=False,
    )


def _response_errors(response: requests.Response) -> list[str]:
    try:
        payload = response.json()
    except ValueError:
        text = response.text.strip()
        return [text] if text else []
    if isinstance(payload, Mapping):
        errors = payload.get("errors")
        if isinstance(errors, list):
            return [str(error) for error in errors]
    return [json.dumps(payload)]


class TrustPoolAdapter(HTTPAdapter):
    """HTTPAdapter whose connections use a fixed client SSL context."""

    def __init__(self, ssl_context: ssl.SSLContext, **kwargs: Any) -> None:
        # HTTPAdapter.__init__ builds the pool manager, so set this first.
        self._ssl_context = ssl_context
        super().__init__(**kwargs)

    def init_poolmanager(self, *args: Any, **kwargs: Any) -> None:
        kwargs["ssl_context"] = self._ssl_context
        super().init_poolmanager(*args, **kwargs)

    def proxy_manager_for(self, proxy: str, **proxy_kwargs: Any) -> Any:
        proxy_kwargs["ssl_context"] = self._ssl_context
        return super().proxy_manager_for(proxy, **proxy_kwargs)


class VaultTransport:
    """
    One requests session bound to a Vault address and its TLS material.

    Connections trust only the parsed CA pool and present the client pair
    when one is configured. Every call carries the client timeout and goes
    through the retry policy. Environment CA bundles are ignored; proxy
    variables are still honoured.
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
        self._base_url = params.vault_addr.rstrip("/")
        self._logger = logger or logging.getLogger("vault_pki_client.transport")
        self._session = self._create_session()

    def _create_session(self) -> requests.Session:
        session = requests.Session()
        max_retries = self._params.max_retries or 0
        adapter = TrustPoolAdapter(
            self._tls.ssl_context(),
            max_retries=build_retry_policy(max_retries, self._params.retry_backoff_factor),
        )
        session.mount("https://", adapter)
        session.trust_env = False
        session.headers.update({"Accept": "application/json"})
        if self._params.namespace:
            session.headers["X-Vault-Namespace"] = self._params.namespace
        return session

    @property
    def tls(self) -> TLSConfig:
        return self._tls

    def close(self) -> None:
        self._session.close()

    def url_for(self, path: str) -> str:
        return f"{self._base_url}/v1/{path.lstrip('/')}"

    def request(
        self,
        method: str,
        path: str,
        *,
        token: str | None = None,
        payload: Mapping[str, Any] | None = None,
    ) -> dict[str, Any]:
        """
        Send one logical request and return the decoded JSON object.

        Raises VaultTransportError when no response arrived, VaultRequestError
        on a non-2xx status and ProtocolError on a body that is not a JSON
        object.
        """
        url = self.url_for(path)
        headers = {"X-Vault-Token": token} if token else None
        self._logger.debug("Vault request %s %s", method, url)
        try:
            response = self._session.request(
                method,
                url,
                headers=headers,
                json=payload,
                timeout=self._params.timeout,
                proxies=requests.utils.get_environ_proxies(url),
            )
        except requests.exceptions.RequestException as exc:
            self._logger.warning("Vault request %s %s failed: %s", method, url, exc)
            raise VaultTransportError(f"{method} {url} failed: {exc}") from exc

        if not 200 <= response.status_code < 300:
            errors = _response_errors(response)
            self._logger.warning(
                "Vault request %s %s returned HTTP %d", method, url, response.status_code
            )
            raise VaultRequestError(response.status_code, errors)

        if response.status_code == 204 or not response.content:
            return {}
        try:
            body = response.json()
        except ValueError as exc:
            raise ProtocolError(f"{method} {url} returned a non-JSON body.") from exc
        if not isinstance(body, dict):
            raise ProtocolError(f"{method} {url} returned a non-object JSON body.")
        return body
