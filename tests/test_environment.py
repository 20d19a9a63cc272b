"""Tests for the environment collections receiving projected secrets."""
import os

import pytest

from navigator_secrets.vault.environment import (
    EnvironmentOverlay,
    ProcessEnvironment,
)


class TestEnvironmentOverlay:
    """In-memory overlay."""

    def test_replace_and_get(self):
        overlay = EnvironmentOverlay()
        assert overlay.replace("API_KEY", "abc") is True
        assert overlay.get("API_KEY") == "abc"
        assert "API_KEY" in overlay
        assert overlay.keys() == ["API_KEY"]

    def test_same_value_is_not_a_change(self):
        overlay = EnvironmentOverlay()
        overlay.replace("API_KEY", "abc")
        revision = overlay.revision
        assert overlay.replace("API_KEY", "abc") is False
        assert overlay.revision == revision

    def test_empty_value_is_set(self):
        overlay = EnvironmentOverlay()
        assert overlay.replace("EMPTY", "") is True
        assert "EMPTY" in overlay

    def test_delete(self):
        overlay = EnvironmentOverlay({"A": "1"})
        assert overlay.delete("A") is True
        assert overlay.delete("A") is False
        assert len(overlay) == 0

    def test_len_and_keys(self):
        overlay = EnvironmentOverlay({"A": "1", "B": "2"})
        assert len(overlay) == 2
        assert sorted(overlay.keys()) == ["A", "B"]
        assert "A" in overlay

    def test_clear(self):
        overlay = EnvironmentOverlay({"A": "1", "B": "2"})
        overlay.clear()
        assert overlay.as_dict() == {}

    def test_environ_merges_over_base(self):
        overlay = EnvironmentOverlay({"PATH": "/opt/bin", "TOKEN": "t"})
        env = overlay.environ({"PATH": "/bin", "HOME": "/home/me"})
        assert env == {"PATH": "/opt/bin", "HOME": "/home/me", "TOKEN": "t"}

    def test_environ_defaults_to_process_environment(self, monkeypatch):
        monkeypatch.setenv("NAV_SECRETS_TEST_VAR", "from-os")
        env = EnvironmentOverlay({"TOKEN": "t"}).environ()
        assert env["NAV_SECRETS_TEST_VAR"] == "from-os"
        assert env["TOKEN"] == "t"

    def test_repr_hides_values(self):
        assert "hunter2" not in repr(EnvironmentOverlay({"PASSWORD": "hunter2"}))


class TestProcessEnvironment:
    """Projection into a live environment mapping."""

    @pytest.fixture
    def environ(self):
        return {"HOME": "/home/me", "TOKEN": "original"}

    def test_only_owned_names_are_listed(self, environ):
        env = ProcessEnvironment(environ)
        env.replace("API_KEY", "abc")
        assert env.keys() == ["API_KEY"]
        assert environ["API_KEY"] == "abc"
        assert env.get("HOME") is None

    def test_removal_restores_shadowed_value(self, environ):
        env = ProcessEnvironment(environ)
        env.replace("TOKEN", "secret")
        assert environ["TOKEN"] == "secret"
        env.delete("TOKEN")
        assert environ["TOKEN"] == "original"
        assert "TOKEN" not in env

    def test_removal_of_new_name(self, environ):
        env = ProcessEnvironment(environ)
        env.replace("API_KEY", "abc")
        env.delete("API_KEY")
        assert "API_KEY" not in environ

    def test_len_counts_owned_names(self, environ):
        env = ProcessEnvironment(environ)
        env.replace("API_KEY", "abc")
        env.replace("TOKEN", "secret")
        assert len(env) == 2

    def test_unowned_names_are_not_deleted(self, environ):
        env = ProcessEnvironment(environ)
        assert env.delete("HOME") is False
        assert environ["HOME"] == "/home/me"

    def test_os_environ(self, monkeypatch):
        monkeypatch.delenv("NAV_SECRETS_TEST_VAR", raising=False)
        env = ProcessEnvironment()
        try:
            env.replace("NAV_SECRETS_TEST_VAR", "value")
            assert os.environ["NAV_SECRETS_TEST_VAR"] == "value"
        finally:
            env.clear()
