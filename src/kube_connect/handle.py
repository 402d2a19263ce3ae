"""
Connection handles.

A ConnectionHandle bundles the resolved client configuration (server, TLS
material, bearer credentials) with a ready-to-use ApiClient. Handles are
immutable: a caller holding a handle keeps a consistent view of TLS and
auth state for as long as it uses it.
"""

import binascii
import copy
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from urllib.parse import urlparse

from kubernetes import client
from kubernetes.client import ApiClient, Configuration
from kubernetes.config import ConfigException, kube_config

from .exceptions import ResolutionError
from .kubeconfig import Cluster, ConfigSnapshot, Identity
from .providers import AuthProvider

logger = logging.getLogger(__name__)

# User keys the loader still needs when the bearer comes from an auth-provider
_TLS_USER_KEYS = {"client-certificate", "client-certificate-data", "client-key", "client-key-data"}


@dataclass(frozen=True)
class ConnectionHandle:
    """Resolved transport and auth material for one context.

    Args:
        context: Name of the context the handle was built for
        namespace: Effective namespace for namespaced operations
        cluster: Name of the cluster the context points at
        server: API server URL
        configuration: kubernetes client Configuration
        api_client: ApiClient bound to ``configuration``
        core_v1: CoreV1Api bound to ``api_client``
    """

    context: str
    namespace: str
    cluster: str
    server: str
    configuration: Configuration = field(repr=False, compare=False)
    api_client: ApiClient = field(repr=False, compare=False)
    core_v1: client.CoreV1Api = field(repr=False, compare=False)


def build_handle(
    snapshot: ConfigSnapshot,
    context_name: str,
    providers: Mapping[str, AuthProvider],
    namespace: str | None = None,
) -> ConnectionHandle:
    """Build a ConnectionHandle for a context of ``snapshot``.

    TLS material and static credentials (token, tokenFile, exec plugin,
    username/password, client certificates) are resolved by the kubernetes
    client's kubeconfig loader. Auth-provider users are resolved by the
    handler registered for their provider kind.

    Args:
        snapshot: Parsed credential file
        context_name: Context to resolve
        providers: Auth-provider handlers keyed by provider kind
        namespace: Namespace override, defaults to the context's namespace

    Returns:
        A fully built handle; nothing partial is ever returned

    Raises:
        ResolutionError: If the context, cluster or user cannot be resolved,
            the server URL is malformed, TLS material is unusable or the
            user has no usable credentials
    """
    context = snapshot.context(context_name)
    cluster = snapshot.cluster(context.cluster)
    identity = snapshot.identity(context.identity)

    parsed = urlparse(cluster.server)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ResolutionError(
            f"Malformed server URL for cluster {context.cluster!r}: {cluster.server!r}",
            "Server must be an http:// or https:// URL"
        )

    handler = None
    if identity.auth_provider is not None:
        kind = identity.auth_provider.name
        handler = providers.get(kind)
        if handler is None:
            raise ResolutionError(
                f"No handler registered for auth-provider {kind!r}",
                f"Registered providers: {', '.join(sorted(providers)) or 'none'}"
            )

    configuration = Configuration()
    loader_config = _loader_config(context_name, context.cluster, cluster, identity)
    try:
        kube_config.KubeConfigLoader(
            config_dict=loader_config,
            active_context=context_name,
            config_base_path=snapshot.base_path,
        ).load_and_set(configuration)
    except (ConfigException, OSError, binascii.Error, ValueError) as e:
        raise ResolutionError(
            f"Failed to load credentials for context {context_name!r}",
            f"{type(e).__name__}: {e}"
        ) from e

    if handler is not None:
        handler.apply(configuration, identity)
    elif not configuration.api_key and not configuration.cert_file:
        raise ResolutionError(
            f"User {identity.name!r} has no usable credentials",
            "Expected a token, tokenFile, exec plugin, username/password, "
            "client certificate or auth-provider"
        )

    api_client = ApiClient(configuration)
    handle = ConnectionHandle(
        context=context_name,
        namespace=namespace or snapshot.namespace_for(context_name),
        cluster=context.cluster,
        server=configuration.host,
        configuration=configuration,
        api_client=api_client,
        core_v1=client.CoreV1Api(api_client),
    )
    logger.debug(f"Built connection handle: {handle}")
    return handle


def _loader_config(context_name: str, cluster_name: str, cluster: Cluster,
                   identity: Identity) -> dict:
    """Single-context kubeconfig document for the kubernetes loader.

    For auth-provider users only the client certificate keys are passed on;
    the bearer comes from the (possibly just refreshed) in-memory provider
    config rather than from what the file held at load time.
    """
    user = copy.deepcopy(dict(identity.raw))
    if identity.auth_provider is not None:
        user = {key: value for key, value in user.items() if key in _TLS_USER_KEYS}
    return {
        "clusters": [{"name": cluster_name, "cluster": copy.deepcopy(dict(cluster.raw))}],
        "users": [{"name": identity.name, "user": user}],
        "contexts": [
            {"name": context_name, "context": {"cluster": cluster_name, "user": identity.name}}
        ],
        "current-context": context_name,
    }
