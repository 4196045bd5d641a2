"""
Client-side API: one-shot HTTPS requests to a server whose certificate is pinned.

Usage:

    client = create_client("https://localhost:8443/hello",
                           "certs/server.crt", "certs/client.crt", "certs/client.key")
    body, status = client.send_request()
    client.close()
"""
from __future__ import annotations

import logging
import ssl
from dataclasses import dataclass
from typing import Tuple

import requests
from requests.adapters import HTTPAdapter

from .tlsconfig import create_client_context

logger = logging.getLogger(__name__)


class PinnedTLSAdapter(HTTPAdapter):
    """Transport adapter that connects with a prepared ``ssl.SSLContext``."""

    def __init__(self, ssl_context: ssl.SSLContext, **kwargs):
        self._ssl_context = ssl_context
        super().__init__(**kwargs)

    def init_poolmanager(self, connections, maxsize, block=False, **pool_kwargs):
        pool_kwargs["ssl_context"] = self._ssl_context
        return super().init_poolmanager(connections, maxsize, block=block, **pool_kwargs)

    def proxy_manager_for(self, proxy, **proxy_kwargs):
        proxy_kwargs["ssl_context"] = self._ssl_context
        return super().proxy_manager_for(proxy, **proxy_kwargs)


@dataclass
class PinnedClient:
    """
    Wrapper around a ``requests.Session`` whose https:// transport trusts
    exactly one server certificate.
    """
    server_url: str
    session: requests.Session

    def send_request(self, timeout: float = 10) -> Tuple[str, int]:
        """
        GET ``server_url`` and return ``(body, status_code)``.

        :raises requests.exceptions.RequestException: on connection or TLS failure,
            including a server certificate that does not match the pinned one.
        """
        logger.info("Sending request to %s...", self.server_url)
        resp = self.session.get(self.server_url, timeout=timeout)
        logger.info("Received response: Status Code %d", resp.status_code)
        return resp.text, resp.status_code

    def close(self) -> None:
        self.session.close()


def create_client(
    server_url: str,
    server_certfile: str,
    client_certfile: str,
    client_keyfile: str,
) -> PinnedClient:
    """
    Build a client that presents ``client_certfile`` and trusts only ``server_certfile``.

    :raises ConfigLoadError: if any certificate or key file cannot be loaded.
    """
    ctx = create_client_context(server_certfile, client_certfile, client_keyfile)

    session = requests.Session()
    # Environment CA bundles (REQUESTS_CA_BUNDLE etc.) must not widen the pinned trust store.
    session.trust_env = False
    session.mount("https://", PinnedTLSAdapter(ctx))
    return PinnedClient(server_url=server_url, session=session)
