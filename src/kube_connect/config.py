"""
Credential source configuration and lookup.

This module decides which credential file is authoritative for the
process. Resolution order is:

1. An explicit path supplied by the caller
2. The KUBE_CONNECT_KUBECONFIG environment variable
3. A ``.kubeconfig`` file in the current directory
4. The legacy ``.kubeconnectrc`` overlay on top of ``~/.kube/config``
"""

import logging
import os
import warnings
from dataclasses import dataclass
from pathlib import Path

import yaml

from .exceptions import InvalidConfigError, NotLoggedInError

logger = logging.getLogger(__name__)

KUBECONFIG_ENV_VAR = "KUBE_CONNECT_KUBECONFIG"
DEFAULT_KUBECONFIG_PATH = ".kubeconfig"
LEGACY_OVERLAY_PATH = ".kubeconnectrc"
SYSTEM_KUBECONFIG_PATH = Path(".kube") / "config"

SOURCE_EXPLICIT = "explicit"
SOURCE_ENVIRONMENT = "environment"
SOURCE_LOCAL = "local"
SOURCE_LEGACY = "legacy"


class DeprecatedConfigWarning(UserWarning):
    """Warning category for deprecated credential sources.

    Kept separate from DeprecationWarning so it is shown by default and
    can still be filtered on its own.
    """
    pass


@dataclass(frozen=True)
class Overlay:
    """Legacy overlay selecting the effective context and namespace."""

    context: str
    namespace: str


@dataclass(frozen=True)
class CredentialSource:
    """The authoritative credential file for this process.

    Args:
        path: Path to the kubeconfig file that is read and written back to
        kind: How the path was found (explicit, environment, local, legacy)
        overlay: Legacy context/namespace overlay, only set for legacy sources
    """

    path: str
    kind: str = SOURCE_EXPLICIT
    overlay: Overlay | None = None


@dataclass
class ConfigOverrides:
    """Caller-supplied overrides applied on top of the credential file.

    Args:
        current_context: Context to use instead of the file's current-context
        namespace: Namespace to use instead of the context's namespace
    """

    current_context: str | None = None
    namespace: str | None = None


def get_kubeconfig_path(cwd: str | None = None) -> str:
    """Return the kubeconfig path without checking that it exists.

    Returns the KUBE_CONNECT_KUBECONFIG environment variable when set,
    otherwise the absolute path of ``.kubeconfig`` in ``cwd``.
    """
    env_path = os.getenv(KUBECONFIG_ENV_VAR)
    if env_path:
        return env_path
    return os.path.abspath(os.path.join(cwd or os.getcwd(), DEFAULT_KUBECONFIG_PATH))


def locate(
    explicit_path: str | None = None,
    silent: bool = False,
    cwd: str | None = None,
    home: str | None = None,
) -> tuple[CredentialSource, list[str]]:
    """Find the authoritative credential source.

    Args:
        explicit_path: Path supplied by the caller, used unconditionally
        silent: Do not emit DeprecatedConfigWarning for the legacy overlay
        cwd: Directory searched for local files (defaults to os.getcwd())
        home: Home directory holding ``.kube/config`` (defaults to Path.home())

    Returns:
        Tuple of the credential source and any advisory warning messages

    Raises:
        InvalidConfigError: If a candidate path is a directory or the
            overlay is missing required fields
        NotLoggedInError: If no credential source can be found
    """
    # 1. Explicit configuration, existence is checked on load
    if explicit_path:
        logger.debug(f"Using explicit kubeconfig path: {explicit_path}")
        return CredentialSource(path=explicit_path, kind=SOURCE_EXPLICIT), []

    # 2. Environment variable
    env_path = os.getenv(KUBECONFIG_ENV_VAR)
    if env_path:
        if os.path.isdir(env_path):
            raise InvalidConfigError(
                f"{KUBECONFIG_ENV_VAR} points to a directory: {env_path}",
                "Set the variable to the path of a kubeconfig file"
            )
        logger.debug(f"Using kubeconfig from {KUBECONFIG_ENV_VAR}: {env_path}")
        return CredentialSource(path=env_path, kind=SOURCE_ENVIRONMENT), []

    base_dir = Path(cwd or os.getcwd())

    # 3. Local default file
    local_path = (base_dir / DEFAULT_KUBECONFIG_PATH).absolute()
    if local_path.is_dir():
        raise InvalidConfigError(
            f"{local_path} is a directory",
            f"Remove the directory or set {KUBECONFIG_ENV_VAR} to a kubeconfig file"
        )
    if local_path.is_file():
        logger.debug(f"Using local kubeconfig: {local_path}")
        return CredentialSource(path=str(local_path), kind=SOURCE_LOCAL), []

    # 4. Legacy overlay plus system default file
    overlay_path = base_dir / LEGACY_OVERLAY_PATH
    home_dir = Path(home) if home else Path.home()
    system_path = home_dir / SYSTEM_KUBECONFIG_PATH

    if not overlay_path.is_file():
        raise NotLoggedInError(
            "No credentials found",
            f"No {DEFAULT_KUBECONFIG_PATH} file found in {base_dir} and "
            f"{KUBECONFIG_ENV_VAR} is not set. Make sure you are in the correct "
            "directory, or run the interactive login again."
        )

    overlay = _load_overlay(overlay_path)

    if not system_path.is_file():
        raise NotLoggedInError(
            "No credentials found",
            f"{overlay_path} exists but {system_path} does not. "
            "Run the interactive login again."
        )

    message = (
        f"{LEGACY_OVERLAY_PATH} is deprecated and should be removed; "
        f"use a {DEFAULT_KUBECONFIG_PATH} file or {KUBECONFIG_ENV_VAR} instead"
    )
    if not silent:
        warnings.warn(message, DeprecatedConfigWarning, stacklevel=2)

    logger.debug(f"Using legacy overlay {overlay_path} on top of {system_path}")
    source = CredentialSource(path=str(system_path), kind=SOURCE_LEGACY, overlay=overlay)
    return source, [message]


def _load_overlay(path: Path) -> Overlay:
    """Parse and validate the legacy overlay file."""
    try:
        data = yaml.safe_load(path.read_text())
    except (OSError, yaml.YAMLError) as e:
        raise InvalidConfigError(
            f"Failed to read {path}",
            f"{type(e).__name__}: {e}"
        ) from e

    if not isinstance(data, dict):
        raise InvalidConfigError(
            f"{path} must contain a mapping with 'context' and 'namespace'"
        )

    missing = [key for key in ("context", "namespace") if not data.get(key)]
    if missing:
        raise InvalidConfigError(
            f"{path} is missing required fields: {', '.join(missing)}"
        )

    return Overlay(context=str(data["context"]), namespace=str(data["namespace"]))
