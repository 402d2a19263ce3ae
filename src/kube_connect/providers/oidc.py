"""
OIDC (OpenID Connect) auth-provider handler.

Keeps the ``oidc`` auth-provider's id-token fresh by exchanging the stored
refresh token at the issuer's ``/connect/token`` endpoint, and writes the
result back to the credential file exactly once per refresh.
"""

import dataclasses
import logging

import requests
from kubernetes.client import Configuration

from ..config import CredentialSource
from ..exceptions import (
    RELOGIN_HINT,
    ExpiredSessionError,
    InvalidConfigError,
    RefreshTransportError,
    ResolutionError,
)
from ..kubeconfig import OIDC_PROVIDER, Identity, KubeconfigPersister, OIDCProviderConfig
from ..tokens import is_token_valid
from .base import AuthProvider

logger = logging.getLogger(__name__)

TOKEN_PATH = "/connect/token"


class OIDCProvider(AuthProvider):
    """Refresh and apply OIDC id-tokens.

    Args:
        timeout: Timeout in seconds for the token request
        verify_ssl: Verify the issuer's TLS certificate

    Example:
        >>> provider = OIDCProvider()
        >>> identity, refreshed = provider.refresh_if_needed(source, identity)
    """

    kind = OIDC_PROVIDER

    def __init__(self, timeout: float = 10, verify_ssl: bool = True) -> None:
        self.timeout = timeout
        self.verify_ssl = verify_ssl

    def refresh_if_needed(
        self, source: CredentialSource, identity: Identity
    ) -> tuple[Identity, bool]:
        """Refresh the id-token if it is missing or about to expire.

        Does nothing when the token is still valid or when there is no
        refresh token to exchange.

        Raises:
            TokenDecodeError: If the stored id-token is malformed
            ExpiredSessionError: If the issuer rejects the refresh token
            RefreshTransportError: If the refresh fails for any other reason
            PersistError: If the new token cannot be written back
        """
        provider = identity.auth_provider
        if not isinstance(provider, OIDCProviderConfig):
            return identity, False

        if is_token_valid(provider):
            logger.debug(f"id-token for {identity.name} is still valid")
            return identity, False

        if not provider.refresh_token:
            logger.debug(f"id-token for {identity.name} is stale but no refresh token is stored")
            return identity, False

        new_provider = self.refresh(provider)

        persister = KubeconfigPersister(source.path, identity.name)
        persister.persist(new_provider.to_dict())

        logger.info(f"Refreshed OIDC credentials for {identity.name}")
        return dataclasses.replace(identity, auth_provider=new_provider), True

    def refresh(self, provider: OIDCProviderConfig) -> OIDCProviderConfig:
        """Exchange the refresh token for a new id-token.

        Returns:
            A copy of ``provider`` with the new id-token, and the new refresh
            token when the issuer rotated it

        Raises:
            ExpiredSessionError: If the issuer returns ``invalid_grant``
            RefreshTransportError: For network errors and any other failure
        """
        if not provider.issuer_url:
            raise InvalidConfigError(
                "OIDC auth-provider has no idp-issuer-url",
                "Cannot refresh credentials without an issuer"
            )

        token_url = f"{provider.issuer_url.rstrip('/')}{TOKEN_PATH}"
        logger.debug(f"Refreshing id-token at {token_url}")

        token_data = {
            "grant_type": "refresh_token",
            "refresh_token": provider.refresh_token,
        }
        if provider.client_id:
            token_data["client_id"] = provider.client_id
        if provider.client_secret:
            token_data["client_secret"] = provider.client_secret

        try:
            response = requests.post(
                token_url,
                data=token_data,
                verify=self.verify_ssl,
                timeout=self.timeout
            )
        except requests.RequestException as e:
            raise RefreshTransportError(
                "Failed to refresh credentials",
                f"Error contacting {token_url}: {str(e)}"
            ) from e

        if not response.ok:
            self._raise_for_error(response)

        try:
            token_response = response.json()
        except ValueError as e:
            raise RefreshTransportError(
                "Failed to refresh credentials",
                f"Token endpoint returned invalid JSON: {str(e)}"
            ) from e

        id_token = token_response.get("id_token") if isinstance(token_response, dict) else None
        if not id_token:
            raise RefreshTransportError(
                "Failed to refresh credentials",
                "Token response did not contain an id_token"
            )

        return dataclasses.replace(
            provider,
            id_token=id_token,
            refresh_token=token_response.get("refresh_token") or provider.refresh_token,
        )

    def _raise_for_error(self, response: requests.Response) -> None:
        error_type = None
        error_detail = f"HTTP {response.status_code}"
        try:
            error_data = response.json()
            error_type = error_data.get("error")
            error_desc = error_data.get("error_description", "")
            if error_type:
                error_detail = f"{error_type}: {error_desc}" if error_desc else error_type
        except (ValueError, AttributeError):
            # Not an OAuth error body, fall back to the raw text
            if "invalid_grant" in response.text:
                error_type = "invalid_grant"

        if error_type == "invalid_grant":
            raise ExpiredSessionError(
                "Failed to refresh credentials for environment, please log in again",
                error_detail
            )

        raise RefreshTransportError("Failed to refresh credentials", error_detail)

    def apply(self, configuration: Configuration, identity: Identity) -> None:
        provider = identity.auth_provider
        if not isinstance(provider, OIDCProviderConfig) or not provider.id_token:
            raise ResolutionError(
                f"User {identity.name!r} has no OIDC id-token",
                RELOGIN_HINT
            )
        configuration.api_key = {"authorization": f"Bearer {provider.id_token}"}

    def get_description(self) -> str:
        return f"OIDC auth-provider (verify_ssl={self.verify_ssl})"
