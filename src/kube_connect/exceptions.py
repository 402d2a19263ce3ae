"""
Custom exceptions for the kube-connect library.

This module defines the exception hierarchy used throughout the library.
All exceptions inherit from KubeConnectError, making it easy to catch
any connection-related error.
"""

RELOGIN_HINT = "Run the interactive login again to obtain new credentials"


class KubeConnectError(Exception):
    """Base exception for all kube-connect errors.

    Args:
        message: Human-readable error message
        details: Optional additional details about the error
    """

    def __init__(self, message: str, details: str | None = None) -> None:
        self.message = message
        self.details = details
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message}\nDetails: {self.details}"
        return self.message


class NotLoggedInError(KubeConnectError):
    """No usable credential source was found.

    The caller should (re-)authenticate to produce a credential file.

    Example:
        >>> # No .kubeconfig, no KUBE_CONNECT_KUBECONFIG, no legacy overlay
        >>> # Raises: NotLoggedInError("No credentials found", RELOGIN_HINT)
    """

    def __init__(self, message: str, details: str | None = RELOGIN_HINT) -> None:
        super().__init__(message, details)


class InvalidConfigError(KubeConnectError):
    """A credential file is a directory, unparseable, or missing required fields."""
    pass


class TokenDecodeError(KubeConnectError):
    """An id-token payload is not valid base64url or JSON.

    This indicates a corrupted credential rather than a normal expiry,
    so it is never treated as a reason to refresh.
    """
    pass


class ExpiredSessionError(KubeConnectError):
    """The identity provider rejected the refresh-token grant.

    The refresh token has expired or been revoked and a full interactive
    login is required.
    """

    def __init__(self, message: str, details: str | None = RELOGIN_HINT) -> None:
        super().__init__(message, details)


class RefreshTransportError(KubeConnectError):
    """Token refresh failed for any reason other than a rejected grant."""
    pass


class PersistError(KubeConnectError):
    """A refreshed credential could not be written back to the credential file.

    Fatal even though the in-memory credential is already valid: a later
    process start would otherwise observe the stale on-disk token.
    """
    pass


class ResolutionError(KubeConnectError):
    """Unknown context, cluster or identity, or a handle could not be built."""
    pass


class TunnelError(KubeConnectError):
    """A port-forward tunnel could not be established."""
    pass
