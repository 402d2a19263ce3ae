"""
Port-forward tunnels to pods.

PortForwarder listens on local ports and bridges every accepted connection
to the matching pod port through the API server's ``portforward``
sub-resource, using the transport and credentials of a ConnectionHandle.
"""

import logging
import select
import selectors
import socket
import threading
from collections.abc import Iterable
from dataclasses import dataclass

from kubernetes import client
from kubernetes.client import ApiClient
from kubernetes.client.rest import ApiException
from kubernetes.stream import portforward

from .exceptions import TunnelError
from .handle import ConnectionHandle

logger = logging.getLogger(__name__)

LISTEN_ADDRESS = "127.0.0.1"
POLL_INTERVAL = 0.5
BUFFER_SIZE = 64 * 1024


@dataclass(frozen=True)
class PortMapping:
    """A local port forwarded to a remote pod port. ``local=0`` picks a free port."""

    local: int
    remote: int


def parse_port_mappings(ports: Iterable[str]) -> list[PortMapping]:
    """Parse port specs of the form ``"8080:80"``, ``"80"`` or ``":80"``.

    Raises:
        TunnelError: If no ports are given or a spec is malformed
    """
    mappings = []
    for spec in ports:
        local_part, sep, remote_part = str(spec).partition(":")
        if not sep:
            remote_part = local_part
        try:
            local = int(local_part) if local_part else 0
            remote = int(remote_part)
        except ValueError:
            raise TunnelError(f"Invalid port mapping: {spec!r}") from None

        if not 0 <= local <= 65535 or not 0 < remote <= 65535:
            raise TunnelError(
                f"Invalid port mapping: {spec!r}",
                "Ports must be between 1 and 65535"
            )
        mappings.append(PortMapping(local=local, remote=remote))

    if not mappings:
        raise TunnelError("No ports to forward")
    return mappings


class PortForwarder:
    """Forward local ports to a pod until told to stop.

    Args:
        handle: Connection handle providing transport and credentials
        pod_name: Name of the pod to forward to
        mappings: Ports to forward
        namespace: Namespace of the pod, defaults to the handle's namespace

    Example:
        >>> stop = threading.Event()
        >>> forwarder = PortForwarder(manager.handle, "db-0", parse_port_mappings(["5432"]))
        >>> forwarder.forward(stop)  # blocks until stop.set()
    """

    def __init__(
        self,
        handle: ConnectionHandle,
        pod_name: str,
        mappings: list[PortMapping],
        namespace: str | None = None,
    ) -> None:
        self.handle = handle
        self.pod_name = pod_name
        self.mappings = mappings
        self.namespace = namespace or handle.namespace
        # Local port bound for each entry of ``mappings``, in the same order
        self.bound_ports: list[int] = []

    def forward(
        self,
        stop_event: threading.Event,
        ready_event: threading.Event | None = None,
    ) -> None:
        """Forward ports until ``stop_event`` is set.

        The upgrade to the pod's portforward endpoint is attempted once and
        every local port is bound before blocking, so those failures are
        raised immediately. Nothing is retried.

        Raises:
            TunnelError: If the upgrade fails or a local port cannot be bound
        """
        self._check_upgrade()
        listeners = self._listen()
        try:
            if ready_event is not None:
                ready_event.set()
            self._serve(listeners, stop_event)
        finally:
            for listener, _ in listeners:
                listener.close()
            logger.info(f"Stopped forwarding to {self.pod_name}")

    def _stream_api(self) -> client.CoreV1Api:
        # stream() patches the ApiClient it is given, keep it off the shared one
        return client.CoreV1Api(ApiClient(self.handle.configuration))

    def _open(self, ports: list[int]):
        return portforward(
            self._stream_api().connect_get_namespaced_pod_portforward,
            self.pod_name,
            self.namespace,
            ports=",".join(str(port) for port in ports),
        )

    def _check_upgrade(self) -> None:
        remote_ports = [m.remote for m in self.mappings]
        try:
            forward = self._open(remote_ports)
        except ApiException as e:
            raise TunnelError(
                f"Failed to open port-forward to {self.namespace}/{self.pod_name}",
                str(e)
            ) from e

        for port in remote_ports:
            forward.socket(port).close()

    def _listen(self) -> list[tuple[socket.socket, PortMapping]]:
        listeners = []
        for mapping in self.mappings:
            try:
                listener = socket.create_server((LISTEN_ADDRESS, mapping.local))
            except OSError as e:
                for bound, _ in listeners:
                    bound.close()
                raise TunnelError(
                    f"Unable to listen on port {mapping.local}",
                    str(e)
                ) from e

            listener.setblocking(False)
            local_port = listener.getsockname()[1]
            listeners.append((listener, mapping))
            logger.info(f"Forwarding from {LISTEN_ADDRESS}:{local_port} -> {mapping.remote}")

        self.bound_ports = [listener.getsockname()[1] for listener, _ in listeners]
        return listeners

    def _serve(
        self,
        listeners: list[tuple[socket.socket, PortMapping]],
        stop_event: threading.Event,
    ) -> None:
        with selectors.DefaultSelector() as selector:
            for listener, mapping in listeners:
                selector.register(listener, selectors.EVENT_READ, mapping)

            while not stop_event.is_set():
                for key, _ in selector.select(timeout=POLL_INTERVAL):
                    try:
                        conn, _ = key.fileobj.accept()
                    except BlockingIOError:
                        continue
                    worker = threading.Thread(
                        target=self._handle_connection,
                        args=(conn, key.data, stop_event),
                        daemon=True,
                    )
                    worker.start()

    def _handle_connection(
        self,
        conn: socket.socket,
        mapping: PortMapping,
        stop_event: threading.Event,
    ) -> None:
        logger.debug(f"Handling connection for {mapping.remote}")
        try:
            forward = self._open([mapping.remote])
        except ApiException as e:
            logger.warning(f"Failed to forward connection to port {mapping.remote}: {e}")
            conn.close()
            return

        remote = forward.socket(mapping.remote)
        remote.setblocking(True)
        conn.setblocking(True)
        try:
            _pipe(conn, remote, stop_event)
        except OSError as e:
            logger.warning(f"Connection to port {mapping.remote} closed: {e}")
        finally:
            conn.close()
            remote.close()

        error = forward.error(mapping.remote)
        if error:
            logger.warning(f"Error forwarding port {mapping.remote}: {error}")


def _pipe(local, remote, stop_event: threading.Event) -> None:
    """Copy bytes both ways until either side closes or ``stop_event`` is set."""
    peers = {local.fileno(): remote, remote.fileno(): local}
    sockets = [local, remote]
    while not stop_event.is_set():
        readable, _, _ = select.select(sockets, [], [], POLL_INTERVAL)
        for sock in readable:
            data = sock.recv(BUFFER_SIZE)
            if not data:
                return
            peers[sock.fileno()].sendall(data)
