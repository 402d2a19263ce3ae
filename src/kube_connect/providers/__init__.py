"""
Auth-provider handlers for kubeconfig ``auth-provider`` blocks.

Handlers implement the AuthProvider interface defined in base.py and are
passed to ConnectionManager as a registry keyed by provider kind.
"""

from .base import AuthProvider
from .oidc import OIDCProvider


def default_providers() -> dict[str, AuthProvider]:
    """Return a fresh registry with the built-in handlers."""
    return {OIDCProvider.kind: OIDCProvider()}


__all__ = ["AuthProvider", "OIDCProvider", "default_providers"]
