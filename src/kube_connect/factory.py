"""
Connection factory.

This module provides the main entry point: locate the authoritative
credential source and build a ConnectionManager for it.
"""

import logging
from collections.abc import Mapping

from .config import ConfigOverrides, locate
from .connection import ConnectionManager
from .providers import AuthProvider

logger = logging.getLogger(__name__)


def get_connection(
    kubeconfig_path: str | None = None,
    overrides: ConfigOverrides | None = None,
    providers: Mapping[str, AuthProvider] | None = None,
    silent: bool = False,
) -> ConnectionManager:
    """Get a connected ConnectionManager.

    Args:
        kubeconfig_path: Explicit credential file, skips the lookup
        overrides: Context and namespace overrides
        providers: Auth-provider handlers keyed by kind (defaults to OIDC)
        silent: Suppress the deprecation warning for the legacy overlay

    Returns:
        ConnectionManager with a ready-to-use handle

    Raises:
        NotLoggedInError: If no credentials are found or the session expired
        KubeConnectError: For any other failure, see ConnectionManager.create()

    Example:
        >>> manager = get_connection()
        >>> manager.handle.core_v1.list_namespaced_pod(manager.current_namespace)
        >>>
        >>> # Explicit file and context
        >>> manager = get_connection(".kubeconfig", ConfigOverrides(current_context="prod"))
    """
    source, warnings = locate(kubeconfig_path, silent=silent)
    for message in warnings:
        logger.warning(message)

    logger.debug(f"Using credential source: {source}")
    return ConnectionManager.create(source, overrides, providers)
