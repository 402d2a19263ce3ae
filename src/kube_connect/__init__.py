"""
kube-connect: renewable cluster connections from kubeconfig credentials.

Finds the authoritative kubeconfig, refreshes stale OIDC id-tokens (writing
them back to the file), and keeps a swappable Kubernetes client handle for
the selected context.

Quick Start:
    >>> from kube_connect import get_connection
    >>>
    >>> manager = get_connection()
    >>> pods = manager.handle.core_v1.list_namespaced_pod(manager.current_namespace)

Switching context:
    >>> manager.set_context("staging")
    >>> manager.current_cluster
    'staging-cluster'
"""

import logging

# Public API
from .config import ConfigOverrides, CredentialSource, DeprecatedConfigWarning, Overlay, locate
from .connection import ConnectionManager
from .exceptions import (
    ExpiredSessionError,
    InvalidConfigError,
    KubeConnectError,
    NotLoggedInError,
    PersistError,
    RefreshTransportError,
    ResolutionError,
    TokenDecodeError,
    TunnelError,
)
from .factory import get_connection
from .handle import ConnectionHandle
from .providers import AuthProvider, OIDCProvider, default_providers
from .proxy import ProxyClient, ProxyResponse
from .tunnel import PortForwarder, PortMapping, parse_port_mappings

# Version
__version__ = "0.1.0"

# Public exports
__all__ = [
    # Main function
    "get_connection",
    # Connections
    "ConnectionManager",
    "ConnectionHandle",
    "ProxyClient",
    "ProxyResponse",
    "PortForwarder",
    "PortMapping",
    "parse_port_mappings",
    # Configuration
    "ConfigOverrides",
    "CredentialSource",
    "Overlay",
    "DeprecatedConfigWarning",
    "locate",
    # Providers
    "AuthProvider",
    "OIDCProvider",
    "default_providers",
    # Exceptions
    "KubeConnectError",
    "NotLoggedInError",
    "InvalidConfigError",
    "TokenDecodeError",
    "ExpiredSessionError",
    "RefreshTransportError",
    "PersistError",
    "ResolutionError",
    "TunnelError",
    # Version
    "__version__",
]

# Configure logging
# Users can configure the logger in their own code:
#   import logging
#   logging.getLogger("kube_connect").setLevel(logging.DEBUG)
logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())  # Avoid "No handler" warnings
