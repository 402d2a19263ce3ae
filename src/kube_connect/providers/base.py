"""
Abstract base class for auth-provider handlers.

Each kubeconfig user may carry an ``auth-provider`` block naming a provider
kind. ConnectionManager is given a registry of handlers keyed by that kind;
the handler keeps the identity's credentials fresh and applies them to the
client configuration.
"""

from abc import ABC, abstractmethod

from kubernetes.client import Configuration

from ..config import CredentialSource
from ..kubeconfig import Identity


class AuthProvider(ABC):
    """Abstract base class for auth-provider handlers.

    Example:
        >>> class StaticProvider(AuthProvider):
        ...     kind = "static"
        ...
        ...     def refresh_if_needed(self, source, identity):
        ...         return identity, False
        ...
        ...     def apply(self, configuration, identity):
        ...         configuration.api_key = {"authorization": "Bearer abc"}
    """

    kind: str = ""

    @abstractmethod
    def refresh_if_needed(
        self, source: CredentialSource, identity: Identity
    ) -> tuple[Identity, bool]:
        """Refresh the identity's credentials if they are stale.

        Implementations that refresh must persist the new credentials to
        ``source`` before returning.

        Args:
            source: The authoritative credential file
            identity: The identity to check

        Returns:
            Tuple of the (possibly new) identity and whether a refresh happened
        """
        pass

    @abstractmethod
    def apply(self, configuration: Configuration, identity: Identity) -> None:
        """Apply the identity's credentials to a client configuration.

        Raises:
            ResolutionError: If the identity has no usable credentials
        """
        pass

    def get_description(self) -> str:
        return self.__class__.__name__
