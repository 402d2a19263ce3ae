"""
Access to namespaced custom resource collections.
"""

import logging
from collections.abc import Iterator
from typing import Any

from kubernetes import client, watch

from .handle import ConnectionHandle

logger = logging.getLogger(__name__)


class CustomResourceClient:
    """List/get/create/update/delete/watch one custom resource kind.

    Args:
        handle: Connection handle providing transport and credentials
        group: API group, e.g. "solution.example.com"
        version: API version, e.g. "v1alpha1"
        plural: Plural resource name, e.g. "hosts"
        namespace: Namespace the client operates in

    Example:
        >>> hosts = manager.custom_resources("solution.example.com", "v1alpha1", "hosts")
        >>> for host in hosts.list()["items"]:
        ...     print(host["metadata"]["name"])
    """

    def __init__(
        self,
        handle: ConnectionHandle,
        group: str,
        version: str,
        plural: str,
        namespace: str,
    ) -> None:
        self.group = group
        self.version = version
        self.plural = plural
        self.namespace = namespace
        self.api = client.CustomObjectsApi(handle.api_client)

    def _scope(self) -> tuple[str, str, str, str]:
        return self.group, self.version, self.namespace, self.plural

    def list(self, **kwargs: Any) -> dict:
        return self.api.list_namespaced_custom_object(*self._scope(), **kwargs)

    def get(self, name: str, **kwargs: Any) -> dict:
        return self.api.get_namespaced_custom_object(*self._scope(), name, **kwargs)

    def create(self, body: dict, **kwargs: Any) -> dict:
        return self.api.create_namespaced_custom_object(*self._scope(), body, **kwargs)

    def update(self, body: dict, **kwargs: Any) -> dict:
        name = body["metadata"]["name"]
        return self.api.replace_namespaced_custom_object(*self._scope(), name, body, **kwargs)

    def delete(self, name: str, **kwargs: Any) -> dict:
        return self.api.delete_namespaced_custom_object(*self._scope(), name, **kwargs)

    def watch(self, **kwargs: Any) -> Iterator[dict]:
        """Yield watch events (``{"type": ..., "object": ...}``) for the collection.

        Pass ``timeout_seconds`` to bound the watch.
        """
        resource_watch = watch.Watch()
        logger.debug(f"Watching {self.plural}.{self.group} in {self.namespace}")
        try:
            yield from resource_watch.stream(
                self.api.list_namespaced_custom_object, *self._scope(), **kwargs
            )
        finally:
            resource_watch.stop()
