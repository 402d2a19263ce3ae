"""
Parsed view of a kubeconfig credential file.

This module turns a kubeconfig file into a ConfigSnapshot: named clusters,
named identities (kubeconfig "users"), named contexts and the selected
context. It also provides the persister used to write a refreshed
auth-provider configuration back to the file.
"""

import logging
import os
import shutil
import tempfile
import threading
from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

import yaml

from .config import CredentialSource, Overlay
from .exceptions import InvalidConfigError, NotLoggedInError, PersistError, ResolutionError

logger = logging.getLogger(__name__)

DEFAULT_NAMESPACE = "default"

OIDC_PROVIDER = "oidc"

# Keys of the oidc auth-provider block that have a dedicated field
_OIDC_KEYS = {
    "id-token": "id_token",
    "refresh-token": "refresh_token",
    "client-id": "client_id",
    "client-secret": "client_secret",
    "idp-issuer-url": "issuer_url",
}


@dataclass(frozen=True)
class OIDCProviderConfig:
    """Auth-provider block for the ``oidc`` provider kind.

    Fields not covered by a named attribute (``idp-certificate-authority``,
    ``extra-scopes``, ...) are kept verbatim in ``extra`` so that rewriting
    the block never drops them.
    """

    id_token: str | None = None
    refresh_token: str | None = None
    client_id: str | None = None
    client_secret: str | None = None
    issuer_url: str | None = None
    extra: Mapping[str, str] = field(default_factory=dict)

    name = OIDC_PROVIDER

    @classmethod
    def from_dict(cls, config: Mapping[str, Any]) -> "OIDCProviderConfig":
        named = {attr: config[key] for key, attr in _OIDC_KEYS.items() if config.get(key)}
        extra = {k: v for k, v in config.items() if k not in _OIDC_KEYS}
        return cls(extra=extra, **named)

    def to_dict(self) -> dict[str, str]:
        result = dict(self.extra)
        for key, attr in _OIDC_KEYS.items():
            value = getattr(self, attr)
            if value:
                result[key] = value
        return result

    def __repr__(self) -> str:
        return (
            f"OIDCProviderConfig(issuer_url={self.issuer_url!r}, client_id={self.client_id!r}, "
            f"id_token={'***REDACTED***' if self.id_token else None}, "
            f"refresh_token={'***REDACTED***' if self.refresh_token else None}, "
            f"client_secret={'***REDACTED***' if self.client_secret else None})"
        )


@dataclass(frozen=True)
class OpaqueProviderConfig:
    """Auth-provider block for any provider kind without a dedicated variant."""

    name: str
    config: Mapping[str, Any] = field(default_factory=dict, repr=False)

    def to_dict(self) -> dict[str, Any]:
        return dict(self.config)


AuthProviderConfig = OIDCProviderConfig | OpaqueProviderConfig


def parse_auth_provider(block: Mapping[str, Any] | None) -> AuthProviderConfig | None:
    """Build the auth-provider variant for a kubeconfig ``auth-provider`` block."""
    if not block:
        return None
    name = block.get("name")
    config = block.get("config") or {}
    if name == OIDC_PROVIDER:
        return OIDCProviderConfig.from_dict(config)
    return OpaqueProviderConfig(name=name or "", config=dict(config))


@dataclass(frozen=True)
class Cluster:
    """A kubeconfig cluster entry.

    ``raw`` is the entry as written in the file; TLS settings are read from
    it when a handle is built.
    """

    server: str
    raw: Mapping[str, Any] = field(default_factory=dict, repr=False, compare=False)


@dataclass(frozen=True)
class Context:
    cluster: str
    identity: str
    namespace: str | None = None


@dataclass(frozen=True)
class Identity:
    """A kubeconfig user entry.

    Only the auth-provider block is parsed; every other credential form
    (token, tokenFile, exec, username/password, client certificates) is
    kept in ``raw`` and resolved by the kubernetes client's loader.
    """

    name: str
    auth_provider: AuthProviderConfig | None = None
    raw: Mapping[str, Any] = field(default_factory=dict, repr=False, compare=False)


@dataclass
class ConfigSnapshot:
    """Immutable view of one credential file.

    The only permitted change after loading is replacing a single identity
    record through replace_identity(), which swaps in a new mapping rather
    than mutating the existing one.
    """

    source: CredentialSource
    clusters: Mapping[str, Cluster]
    identities: Mapping[str, Identity]
    contexts: Mapping[str, Context]
    current_context: str | None = None
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def __post_init__(self) -> None:
        self.clusters = MappingProxyType(dict(self.clusters))
        self.identities = MappingProxyType(dict(self.identities))
        self.contexts = MappingProxyType(dict(self.contexts))

    @property
    def overlay(self) -> Overlay | None:
        return self.source.overlay

    @property
    def base_path(self) -> str:
        """Directory relative certificate paths are resolved against."""
        return os.path.dirname(os.path.abspath(self.source.path))

    @property
    def effective_context(self) -> str:
        """The selected context, with the legacy overlay taking precedence."""
        if self.overlay:
            return self.overlay.context
        if not self.current_context:
            raise ResolutionError(
                "No current context selected",
                f"{self.source.path} has no current-context"
            )
        return self.current_context

    def namespace_for(self, context_name: str) -> str:
        """Namespace for a context, honouring the overlay when it selects that context."""
        if self.overlay and self.overlay.context == context_name:
            return self.overlay.namespace
        return self.context(context_name).namespace or DEFAULT_NAMESPACE

    @property
    def effective_namespace(self) -> str:
        return self.namespace_for(self.effective_context)

    def context(self, name: str) -> Context:
        try:
            return self.contexts[name]
        except KeyError:
            raise ResolutionError(
                f"Context {name!r} not found",
                f"Available contexts: {', '.join(sorted(self.contexts)) or 'none'}"
            ) from None

    def cluster(self, name: str) -> Cluster:
        try:
            return self.clusters[name]
        except KeyError:
            raise ResolutionError(f"Cluster {name!r} not found") from None

    def identity(self, name: str) -> Identity:
        try:
            return self.identities[name]
        except KeyError:
            raise ResolutionError(f"User {name!r} not found") from None

    def replace_identity(self, name: str, identity: Identity) -> None:
        """Swap in a new record for one identity (copy-on-write)."""
        with self._lock:
            identities = dict(self.identities)
            identities[name] = identity
            self.identities = MappingProxyType(identities)


def load_snapshot(source: CredentialSource) -> ConfigSnapshot:
    """Load and parse the credential file named by ``source``.

    Raises:
        NotLoggedInError: If the file does not exist
        InvalidConfigError: If the file is a directory or cannot be parsed
    """
    path = source.path
    if os.path.isdir(path):
        raise InvalidConfigError(f"{path} is a directory")
    if not os.path.exists(path):
        raise NotLoggedInError(
            f"Credential file not found: {path}",
            "Run the interactive login again to create it"
        )

    raw = _read_yaml(path, InvalidConfigError)
    logger.debug(f"Loaded kubeconfig from {path}")

    try:
        clusters = {
            entry["name"]: _parse_cluster(entry.get("cluster") or {})
            for entry in raw.get("clusters") or []
        }
        identities = {
            entry["name"]: _parse_identity(entry["name"], entry.get("user") or {})
            for entry in raw.get("users") or []
        }
        contexts = {
            entry["name"]: _parse_context(entry.get("context") or {})
            for entry in raw.get("contexts") or []
        }
    except (KeyError, TypeError, AttributeError) as e:
        raise InvalidConfigError(
            f"Malformed kubeconfig: {path}",
            f"{type(e).__name__}: {e}"
        ) from e

    return ConfigSnapshot(
        source=source,
        clusters=clusters,
        identities=identities,
        contexts=contexts,
        current_context=raw.get("current-context") or None,
    )


class KubeconfigPersister:
    """Writes a refreshed auth-provider config for one user back to disk.

    Args:
        path: The authoritative kubeconfig file
        identity_name: Name of the kubeconfig user to update
    """

    def __init__(self, path: str, identity_name: str) -> None:
        self.path = path
        self.identity_name = identity_name

    def persist(self, config: Mapping[str, Any]) -> None:
        """Replace the user's ``auth-provider.config`` block.

        The file is re-read so that unrelated changes made since the snapshot
        was loaded are kept, then atomically replaced. A symlinked path is
        resolved first and the file keeps its permission bits.

        Raises:
            PersistError: If the file cannot be read, the user is missing,
                or the write fails
        """
        raw = _read_yaml(self.path, PersistError)

        for entry in raw.get("users") or []:
            if isinstance(entry, dict) and entry.get("name") == self.identity_name:
                user = entry["user"] = entry.get("user") or {}
                provider = user["auth-provider"] = user.get("auth-provider") or {}
                provider["config"] = dict(config)
                break
        else:
            raise PersistError(
                f"Failed to persist credentials for {self.identity_name!r}",
                f"User not found in {self.path}"
            )

        # Replace the link target so a symlinked kubeconfig stays a symlink
        target = os.path.realpath(self.path)
        tmp_name = None
        try:
            with tempfile.NamedTemporaryFile(
                "w", dir=os.path.dirname(target), prefix=".kubeconfig-", delete=False
            ) as tmp:
                tmp_name = tmp.name
                yaml.safe_dump(raw, tmp, default_flow_style=False, sort_keys=False)
            shutil.copymode(target, tmp_name)
            os.replace(tmp_name, target)
        except OSError as e:
            if tmp_name and os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise PersistError(
                f"Failed to persist credentials for {self.identity_name!r}",
                f"Error writing {self.path}: {e}"
            ) from e

        logger.debug(f"Persisted auth-provider config for {self.identity_name} to {self.path}")


def _read_yaml(path: str, error_class: type[Exception]) -> dict:
    try:
        with open(path) as f:
            raw = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        raise error_class(f"Failed to read {path}", f"{type(e).__name__}: {e}") from e

    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise error_class(f"{path} is not a valid kubeconfig", "Top level must be a mapping")
    return raw


def _parse_cluster(data: Mapping[str, Any]) -> Cluster:
    return Cluster(server=data.get("server") or "", raw=dict(data))


def _parse_context(data: Mapping[str, Any]) -> Context:
    return Context(
        cluster=data.get("cluster") or "",
        identity=data.get("user") or "",
        namespace=data.get("namespace"),
    )


def _parse_identity(name: str, data: Mapping[str, Any]) -> Identity:
    return Identity(
        name=name,
        auth_provider=parse_auth_provider(data.get("auth-provider")),
        raw=dict(data),
    )
