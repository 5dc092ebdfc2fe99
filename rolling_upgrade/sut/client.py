from __future__ import annotations

import base64
import itertools
from typing import Any, Dict, Iterable, List, Optional

import httpx

from rolling_upgrade.bench.errors import ConfigurationError
from rolling_upgrade.core.logging import get_logger

logger = get_logger(__name__)


def basic_auth_header(username: str, password: str) -> str:
    raw = f"{username}:{password}".encode("utf-8")
    return "Basic " + base64.b64encode(raw).decode("ascii")


class ClusterClient:
    """
    Blocking REST client for a fixed set of nodes.

    Requests are spread round-robin over `hosts`. HTTP error statuses are
    returned, not raised: callers decide which statuses are expected.
    """

    def __init__(
        self,
        hosts: Iterable[str],
        username: str,
        password: str,
        scheme: str = "http",
        timeout: float = 10.0,
        verify_tls: bool = True,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.hosts: List[str] = [h.strip() for h in hosts if h and h.strip()]
        if not self.hosts:
            raise ConfigurationError("ClusterClient needs at least one host", value=self.hosts)
        self.scheme = scheme
        self._next_host = itertools.cycle(self.hosts)
        self._http = httpx.Client(
            timeout=timeout,
            verify=verify_tls,
            transport=transport,
            headers={"Authorization": basic_auth_header(username, password)},
        )
        # kept so a node-scoped client can be built with the same credentials
        self._username = username
        self._password = password
        self._timeout = timeout
        self._verify_tls = verify_tls
        self._transport = transport

    def scoped_to(self, hosts: Iterable[str]) -> "ClusterClient":
        return ClusterClient(
            hosts=hosts,
            username=self._username,
            password=self._password,
            scheme=self.scheme,
            timeout=self._timeout,
            verify_tls=self._verify_tls,
            transport=self._transport,
        )

    def request(
        self,
        method: str,
        path: str,
        json: Any = None,
        params: Optional[Dict[str, str]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> httpx.Response:
        host = next(self._next_host)
        url = f"{self.scheme}://{host}/{path.lstrip('/')}"
        response = self._http.request(method, url, json=json, params=params, headers=headers)
        logger.debug("http_request", method=method, path=path, host=host, status=response.status_code)
        return response

    def close(self) -> None:
        self._http.close()

    def __enter__(self) -> "ClusterClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


def object_path(data: Any, path: str) -> Any:
    """
    Walk a decoded JSON document along a dotted path ("nodes.abc.version").
    Returns None as soon as a segment is missing.
    """
    current = data
    for key in path.split("."):
        if not isinstance(current, dict) or key not in current:
            return None
        current = current[key]
    return current
