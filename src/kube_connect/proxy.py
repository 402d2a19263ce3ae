"""
HTTP and websocket proxying to workloads through the API server.

A ProxyClient targets the ``proxy`` sub-resource of one pod or service and
sends requests with the transport and credentials of a ConnectionHandle.
"""

import json
import logging
import ssl
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

import websocket
from kubernetes.client import ApiException, Configuration

from .handle import ConnectionHandle

logger = logging.getLogger(__name__)

AUTH_SETTINGS = ["BearerToken"]


@dataclass
class ProxyResponse:
    """Response to a proxied request."""

    status: int
    headers: dict[str, str] = field(default_factory=dict)
    data: bytes = b""

    @property
    def text(self) -> str:
        return self.data.decode("utf-8", errors="replace")

    def json(self) -> Any:
        return json.loads(self.data)


class ProxyClient:
    """Send proxied HTTP requests to a resource running in the cluster.

    Construction performs no I/O.

    Args:
        handle: Connection handle providing transport and credentials
        namespace: Namespace of the target resource
        resource: Resource kind, e.g. "pods" or "services"
        name: Name of the target resource
        throttle: Optional callable invoked before each request to apply
            client-side rate limiting. ``put`` never calls it.

    Example:
        >>> proxy = manager.proxy_service("monitoring", "prometheus:9090")
        >>> proxy.get("api/v1/query", headers={"Accept": "application/json"}).json()
    """

    def __init__(
        self,
        handle: ConnectionHandle,
        namespace: str,
        resource: str,
        name: str,
        throttle: Callable[[], None] | None = None,
    ) -> None:
        self.handle = handle
        self.namespace = namespace
        self.resource = resource
        self.name = name
        self.throttle = throttle

    def path(self, endpoint: str) -> str:
        """API path of the proxy sub-resource for ``endpoint``."""
        return (
            f"/api/v1/namespaces/{self.namespace}/{self.resource}/{self.name}"
            f"/proxy/{endpoint.lstrip('/')}"
        )

    def url(self, endpoint: str) -> str:
        return f"{self.handle.configuration.host}{self.path(endpoint)}"

    def get(self, endpoint: str, headers: Mapping[str, str] | None = None,
            timeout: float | None = None) -> ProxyResponse:
        return self._request("GET", endpoint, headers=headers, timeout=timeout)

    def put(self, endpoint: str, body: Any = None, headers: Mapping[str, str] | None = None,
            timeout: float | None = None) -> ProxyResponse:
        # Proxy writes target a single workload, not the control plane
        return self._request("PUT", endpoint, body, headers, timeout, throttled=False)

    def post(self, endpoint: str, body: Any = None, headers: Mapping[str, str] | None = None,
             timeout: float | None = None) -> ProxyResponse:
        return self._request("POST", endpoint, body, headers, timeout)

    def delete(self, endpoint: str, headers: Mapping[str, str] | None = None,
               timeout: float | None = None) -> ProxyResponse:
        return self._request("DELETE", endpoint, headers=headers, timeout=timeout)

    def _request(
        self,
        method: str,
        endpoint: str,
        body: Any = None,
        headers: Mapping[str, str] | None = None,
        timeout: float | None = None,
        throttled: bool = True,
    ) -> ProxyResponse:
        """Issue a proxied request.

        Raises:
            kubernetes.client.ApiException: If the response status is not 2xx
        """
        if throttled and self.throttle is not None:
            self.throttle()

        path = self.path(endpoint)
        logger.debug(f"Proxy {method} {path}")

        api_client = self.handle.api_client
        method, url, header_params, body, post_params = api_client.param_serialize(
            method,
            path,
            header_params=dict(headers or {}),
            body=body,
            auth_settings=AUTH_SETTINGS,
        )
        response = api_client.call_api(
            method, url, header_params, body, post_params, _request_timeout=timeout
        )
        response.read()

        if not 200 <= response.status <= 299:
            raise ApiException(http_resp=response)

        return ProxyResponse(
            status=response.status,
            headers=dict(response.headers),
            data=response.data,
        )

    def auth_headers(self) -> dict[str, str]:
        """Headers the handle's ApiClient would send, including credentials.

        Only serializes a request; nothing is sent.
        """
        _, _, header_params, _, _ = self.handle.api_client.param_serialize(
            "GET", self.path(""), header_params={}, auth_settings=AUTH_SETTINGS
        )
        return header_params

    def open_websocket(self, endpoint: str, timeout: float | None = None) -> websocket.WebSocket:
        """Open a websocket to ``endpoint`` through the proxy sub-resource.

        Returns:
            A connected websocket-client WebSocket

        Raises:
            websocket.WebSocketException: If the handshake fails
        """
        url = self.url(endpoint)
        if url.startswith("https://"):
            ws_url = "wss://" + url[len("https://"):]
        else:
            ws_url = "ws://" + url[len("http://"):]

        headers = self.auth_headers()
        logger.debug(f"Opening websocket to {ws_url}")
        return websocket.create_connection(
            ws_url,
            header=[f"{key}: {value}" for key, value in headers.items()],
            sslopt=websocket_sslopt(self.handle.configuration),
            timeout=timeout,
        )


def websocket_sslopt(configuration: Configuration) -> dict[str, Any]:
    """websocket-client ``sslopt`` for a client configuration's TLS material."""
    if configuration.verify_ssl:
        sslopt: dict[str, Any] = {"cert_reqs": ssl.CERT_REQUIRED}
        if configuration.ssl_ca_cert:
            sslopt["ca_certs"] = configuration.ssl_ca_cert
        if configuration.assert_hostname is not None:
            sslopt["check_hostname"] = configuration.assert_hostname
    else:
        sslopt = {"cert_reqs": ssl.CERT_NONE}

    if configuration.cert_file:
        sslopt["certfile"] = configuration.cert_file
    if configuration.key_file:
        sslopt["keyfile"] = configuration.key_file
    if configuration.tls_server_name:
        sslopt["server_hostname"] = configuration.tls_server_name
    return sslopt
