"""
Tests for credential source lookup.

Tests cover:
- Resolution precedence (explicit, environment, local, legacy)
- Directory and malformed overlay errors
- Deprecation warnings for the legacy overlay
"""

import warnings
from pathlib import Path

import pytest

from kube_connect.config import (
    DeprecatedConfigWarning,
    Overlay,
    get_kubeconfig_path,
    locate,
)
from kube_connect.exceptions import InvalidConfigError, NotLoggedInError


@pytest.fixture
def home_with_kubeconfig(tmp_path: Path) -> Path:
    home = tmp_path / "home"
    (home / ".kube").mkdir(parents=True)
    (home / ".kube" / "config").write_text("current-context: a\n")
    return home


@pytest.fixture
def workdir(tmp_path: Path) -> Path:
    path = tmp_path / "work"
    path.mkdir()
    return path


class TestLocatePrecedence:
    """Test the order in which credential sources are considered."""

    def test_explicit_path_used_without_existence_check(self, mock_env_vars, workdir):
        """Test an explicit path wins and is not checked here."""
        source, messages = locate("/does/not/exist", cwd=str(workdir))

        assert source.path == "/does/not/exist"
        assert source.kind == "explicit"
        assert source.overlay is None
        assert messages == []

    def test_environment_variable_beats_local_file(self, mock_env_vars, workdir, monkeypatch):
        """Test KUBE_CONNECT_KUBECONFIG takes precedence over .kubeconfig."""
        (workdir / ".kubeconfig").write_text("{}")
        monkeypatch.setenv("KUBE_CONNECT_KUBECONFIG", "/etc/kube/env-config")

        source, _ = locate(cwd=str(workdir))

        assert source.path == "/etc/kube/env-config"
        assert source.kind == "environment"

    def test_environment_variable_directory(self, mock_env_vars, workdir, monkeypatch):
        """Test an environment path naming a directory is rejected."""
        monkeypatch.setenv("KUBE_CONNECT_KUBECONFIG", str(workdir))

        with pytest.raises(InvalidConfigError) as exc_info:
            locate(cwd=str(workdir))

        assert "directory" in str(exc_info.value)

    def test_local_file(self, mock_env_vars, workdir):
        """Test .kubeconfig in the working directory is used."""
        (workdir / ".kubeconfig").write_text("{}")

        source, messages = locate(cwd=str(workdir))

        assert source.path == str((workdir / ".kubeconfig").absolute())
        assert source.kind == "local"
        assert messages == []

    def test_local_directory(self, mock_env_vars, workdir):
        """Test a .kubeconfig directory fails instead of falling through."""
        (workdir / ".kubeconfig").mkdir()

        with pytest.raises(InvalidConfigError):
            locate(cwd=str(workdir))


class TestLocateLegacyOverlay:
    """Test the deprecated overlay fallback."""

    def test_overlay_with_system_file(self, mock_env_vars, workdir, home_with_kubeconfig):
        """Test the overlay is combined with ~/.kube/config."""
        (workdir / ".kubeconnectrc").write_text('{"context": "b", "namespace": "ns2"}')

        with pytest.warns(DeprecatedConfigWarning, match="deprecated"):
            source, messages = locate(cwd=str(workdir), home=str(home_with_kubeconfig))

        assert source.kind == "legacy"
        assert source.path == str(home_with_kubeconfig / ".kube" / "config")
        assert source.overlay == Overlay(context="b", namespace="ns2")
        assert len(messages) == 1

    def test_overlay_silent(self, mock_env_vars, workdir, home_with_kubeconfig):
        """Test silent suppresses the warning but still reports it."""
        (workdir / ".kubeconnectrc").write_text("context: b\nnamespace: ns2\n")

        with warnings.catch_warnings():
            warnings.simplefilter("error")
            source, messages = locate(cwd=str(workdir), home=str(home_with_kubeconfig), silent=True)

        assert source.overlay.context == "b"
        assert messages

    def test_overlay_missing_fields(self, mock_env_vars, workdir, home_with_kubeconfig):
        """Test an overlay without a namespace is invalid."""
        (workdir / ".kubeconnectrc").write_text('{"context": "b"}')

        with pytest.raises(InvalidConfigError) as exc_info:
            locate(cwd=str(workdir), home=str(home_with_kubeconfig))

        assert "namespace" in str(exc_info.value)

    def test_overlay_not_a_mapping(self, mock_env_vars, workdir, home_with_kubeconfig):
        """Test an overlay that is not a mapping is invalid."""
        (workdir / ".kubeconnectrc").write_text("- b\n- ns2\n")

        with pytest.raises(InvalidConfigError):
            locate(cwd=str(workdir), home=str(home_with_kubeconfig))

    def test_no_overlay(self, mock_env_vars, workdir, home_with_kubeconfig):
        """Test no local file and no overlay means not logged in."""
        with pytest.raises(NotLoggedInError) as exc_info:
            locate(cwd=str(workdir), home=str(home_with_kubeconfig))

        assert "login" in str(exc_info.value)

    def test_overlay_without_system_file(self, mock_env_vars, workdir, tmp_path):
        """Test an overlay alone is not enough."""
        (workdir / ".kubeconnectrc").write_text('{"context": "b", "namespace": "ns2"}')

        with pytest.raises(NotLoggedInError):
            locate(cwd=str(workdir), home=str(tmp_path / "empty-home"))


class TestGetKubeconfigPath:
    """Test the non-checking path helper."""

    def test_from_env(self, mock_env_vars, monkeypatch):
        monkeypatch.setenv("KUBE_CONNECT_KUBECONFIG", "/tmp/custom")
        assert get_kubeconfig_path() == "/tmp/custom"

    def test_default(self, mock_env_vars, workdir):
        assert get_kubeconfig_path(cwd=str(workdir)) == str(workdir / ".kubeconfig")
