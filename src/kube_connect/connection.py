"""
Connection management for a selected kubeconfig context.

ConnectionManager owns the live ConnectionHandle and replaces it wholesale
on context switch or credential refresh, so operations already running
against the previous handle are never affected.
"""

import logging
import threading
from collections.abc import Callable, Mapping
from typing import Any

from kubernetes import client, watch

from .config import ConfigOverrides, CredentialSource
from .handle import ConnectionHandle, build_handle
from .kubeconfig import ConfigSnapshot, load_snapshot
from .providers import AuthProvider, default_providers
from .proxy import ProxyClient
from .resources import CustomResourceClient
from .tunnel import PortForwarder, parse_port_mappings

logger = logging.getLogger(__name__)


def refresh_identity(
    snapshot: ConfigSnapshot,
    context_name: str,
    providers: Mapping[str, AuthProvider],
) -> bool:
    """Refresh the credentials of the identity bound to a context.

    The refreshed identity is persisted by its provider and then swapped into
    ``snapshot``.

    Returns:
        True if a refresh happened
    """
    context = snapshot.context(context_name)
    identity = snapshot.identity(context.identity)
    if identity.auth_provider is None:
        return False

    handler = providers.get(identity.auth_provider.name)
    if handler is None:
        return False

    new_identity, refreshed = handler.refresh_if_needed(snapshot.source, identity)
    if refreshed:
        snapshot.replace_identity(identity.name, new_identity)
    return refreshed


class ConnectionManager:
    """Owns the active ConnectionHandle for a credential source.

    Use ConnectionManager.create() (or get_connection()) to build one.

    Example:
        >>> manager = ConnectionManager.create(CredentialSource(path=".kubeconfig"))
        >>> manager.current_context
        'prod'
        >>> pods = manager.handle.core_v1.list_namespaced_pod(manager.current_namespace)
    """

    def __init__(
        self,
        snapshot: ConfigSnapshot,
        handle: ConnectionHandle,
        providers: Mapping[str, AuthProvider],
    ) -> None:
        self._snapshot = snapshot
        self._handle = handle
        self._providers = dict(providers)
        self._lock = threading.Lock()

    @classmethod
    def create(
        cls,
        source: CredentialSource,
        overrides: ConfigOverrides | None = None,
        providers: Mapping[str, AuthProvider] | None = None,
    ) -> "ConnectionManager":
        """Load ``source``, refresh credentials if needed and build a handle.

        The context is chosen from, in order: ``overrides.current_context``,
        the legacy overlay, and the file's current-context.

        Raises:
            NotLoggedInError: If the credential file does not exist
            InvalidConfigError: If the credential file is malformed
            TokenDecodeError: If a stored id-token is corrupt
            ExpiredSessionError: If the refresh token was rejected
            RefreshTransportError: If the refresh failed otherwise
            PersistError: If the refreshed token could not be saved
            ResolutionError: If the context cannot be resolved
        """
        overrides = overrides or ConfigOverrides()
        if providers is None:
            providers = default_providers()

        snapshot = load_snapshot(source)
        context_name = overrides.current_context or snapshot.effective_context

        refresh_identity(snapshot, context_name, providers)
        handle = build_handle(snapshot, context_name, providers, namespace=overrides.namespace)

        logger.info(f"Connected to {handle.server} using context {handle.context}")
        return cls(snapshot, handle, providers)

    @property
    def handle(self) -> ConnectionHandle:
        return self._handle

    @property
    def snapshot(self) -> ConfigSnapshot:
        return self._snapshot

    @property
    def source(self) -> CredentialSource:
        return self._snapshot.source

    @property
    def current_context(self) -> str:
        return self._handle.context

    @property
    def current_namespace(self) -> str:
        return self._handle.namespace

    @property
    def current_cluster(self) -> str:
        return self._handle.cluster

    def set_context(self, name: str) -> None:
        """Switch to another context without saving it to the file.

        The new handle is built completely before it replaces the current
        one; on failure the current handle stays active. Credentials are not
        refreshed, call refresh_credentials() for that.

        Raises:
            ResolutionError: If the context cannot be resolved
        """
        handle = build_handle(self._snapshot, name, self._providers)
        with self._lock:
            self._handle = handle
        logger.info(f"Switched to context {name}")

    def refresh_credentials(self) -> bool:
        """Refresh the active context's credentials and rebuild the handle.

        Returns:
            True if the credentials were refreshed
        """
        current = self._handle
        with self._lock:
            refreshed = refresh_identity(self._snapshot, current.context, self._providers)
            if refreshed:
                self._handle = build_handle(
                    self._snapshot, current.context, self._providers, namespace=current.namespace
                )
        return refreshed

    def watch_pods(
        self,
        callback: Callable[[client.V1Pod, str], None],
        namespace: str | None = None,
        **list_options: Any,
    ) -> None:
        """Watch pods and invoke ``callback(pod, event_type)`` for each event.

        Without ``timeout_seconds`` the underlying kubernetes Watch re-issues
        the list request each time the server closes the stream, so this
        blocks until ``callback`` raises or the watch itself fails (for
        example a second 410 Gone in a row). Pass ``timeout_seconds`` to
        return once the server ends that single request. Exceptions from
        ``callback`` are propagated.

        ``list_options`` are passed to list_namespaced_pod (label_selector,
        timeout_seconds, ...).
        """
        handle = self._handle
        pod_watch = watch.Watch()
        try:
            for event in pod_watch.stream(
                handle.core_v1.list_namespaced_pod,
                namespace or handle.namespace,
                **list_options,
            ):
                pod = event.get("object")
                if not isinstance(pod, client.V1Pod):
                    continue
                callback(pod, event["type"])
        finally:
            pod_watch.stop()

    def proxy(self, namespace: str, resource: str, name: str) -> ProxyClient:
        """Create a ProxyClient for HTTP requests to a resource in the cluster."""
        return ProxyClient(self._handle, namespace, resource, name)

    def proxy_pod(self, namespace: str, pod_name: str) -> ProxyClient:
        return self.proxy(namespace, "pods", pod_name)

    def proxy_service(self, namespace: str, service_name: str) -> ProxyClient:
        return self.proxy(namespace, "services", service_name)

    def open_tunnel(
        self,
        pod_name: str,
        ports: list[str],
        stop_event: threading.Event,
        ready_event: threading.Event | None = None,
    ) -> None:
        """Port-forward ``ports`` of a pod in the current namespace.

        Blocks until ``stop_event`` is set. See PortForwarder.forward().
        """
        forwarder = PortForwarder(self._handle, pod_name, parse_port_mappings(ports))
        forwarder.forward(stop_event, ready_event)

    def custom_resources(
        self, group: str, version: str, plural: str, namespace: str | None = None
    ) -> CustomResourceClient:
        """Typed access to a namespaced custom resource collection."""
        return CustomResourceClient(
            self._handle, group, version, plural, namespace or self._handle.namespace
        )
