"""Tests for ScopedSettings, the two-tier configuration holding the enabled-set."""
import orjson
import pytest

from navigator_secrets.exceptions import StorageIOError
from navigator_secrets.vault.settings import (
    ConfigurationTarget,
    ScopedSettings,
    SettingsChangeEvent,
)

KEY = "navigator_secrets.enabledCollections"


@pytest.fixture
def events():
    return []


class TestResolution:
    """Read-time resolution of the two tiers."""

    def test_default_when_unset(self):
        settings = ScopedSettings()
        assert settings.get(KEY, ["default"]) == ["default"]
        assert settings.get(KEY) is None

    def test_global_tier(self):
        settings = ScopedSettings(global_values={KEY: ["a"]})
        assert settings.get(KEY, []) == ["a"]

    def test_workspace_overrides_global(self):
        settings = ScopedSettings(
            global_values={KEY: ["a"]}, workspace_values={KEY: ["b"]}
        )
        assert settings.get(KEY) == ["b"]

    def test_workspace_without_key_falls_back(self):
        settings = ScopedSettings(global_values={KEY: ["a"]}, workspace_values={})
        assert settings.has_workspace is True
        assert settings.get(KEY) == ["a"]

    def test_values_are_copies(self):
        settings = ScopedSettings(global_values={KEY: ["a"]})
        settings.get(KEY).append("b")
        assert settings.get(KEY) == ["a"]

    def test_inspect(self):
        settings = ScopedSettings(global_values={KEY: ["a"]}, workspace_values={})
        assert settings.inspect(KEY) == {"global": ["a"], "workspace": None}


class TestUpdate:
    """Writes and change notifications."""

    @pytest.mark.asyncio
    async def test_authoritative_target(self):
        assert ScopedSettings().authoritative_target is ConfigurationTarget.GLOBAL
        assert (
            ScopedSettings(workspace_values={}).authoritative_target
            is ConfigurationTarget.WORKSPACE
        )

    @pytest.mark.asyncio
    async def test_update_global(self, events):
        settings = ScopedSettings()
        settings.on_did_change(events.append)
        await settings.update(KEY, ["a", "b"])
        assert settings.inspect(KEY)["global"] == ["a", "b"]
        assert len(events) == 1
        assert events[0].affects(KEY)
        assert events[0].target is ConfigurationTarget.GLOBAL

    @pytest.mark.asyncio
    async def test_update_goes_to_workspace_when_open(self):
        settings = ScopedSettings(global_values={KEY: ["a"]}, workspace_values={})
        await settings.update(KEY, ["b"])
        assert settings.inspect(KEY) == {"global": ["a"], "workspace": ["b"]}

    @pytest.mark.asyncio
    async def test_workspace_write_without_workspace(self):
        settings = ScopedSettings()
        with pytest.raises(ValueError):
            await settings.update(KEY, ["a"], ConfigurationTarget.WORKSPACE)

    @pytest.mark.asyncio
    async def test_unchanged_value_is_silent(self, events):
        settings = ScopedSettings(global_values={KEY: ["a"]})
        settings.on_did_change(events.append)
        await settings.update(KEY, ["a"])
        assert events == []

    @pytest.mark.asyncio
    async def test_none_removes(self, events):
        settings = ScopedSettings(global_values={KEY: ["a"]})
        settings.on_did_change(events.append)
        await settings.update(KEY, None)
        assert settings.inspect(KEY)["global"] is None
        await settings.update(KEY, None)
        assert len(events) == 1

    @pytest.mark.asyncio
    async def test_dispose_listener(self, events):
        settings = ScopedSettings()
        dispose = settings.on_did_change(events.append)
        dispose()
        await settings.update(KEY, ["a"])
        assert events == []


class TestPersistence:
    """JSON file backing of the tiers."""

    @pytest.mark.asyncio
    async def test_tiers_written_to_files(self, tmp_path):
        global_path = tmp_path / "user" / "settings.json"
        workspace_path = tmp_path / "project" / "settings.json"
        settings = ScopedSettings(
            global_path=global_path, workspace_path=workspace_path
        )
        await settings.update(KEY, ["a"], ConfigurationTarget.GLOBAL)
        await settings.update(KEY, ["b"])
        assert orjson.loads(global_path.read_bytes()) == {KEY: ["a"]}
        assert orjson.loads(workspace_path.read_bytes()) == {KEY: ["b"]}

        reopened = ScopedSettings(global_path=global_path)
        assert reopened.get(KEY) == ["a"]

    def test_unreadable_file_is_ignored(self, tmp_path):
        path = tmp_path / "settings.json"
        path.write_text("{broken")
        assert ScopedSettings(global_path=path).get(KEY, []) == []

    @pytest.mark.asyncio
    async def test_reload_reports_edited_keys(self, tmp_path, events):
        path = tmp_path / "settings.json"
        path.write_bytes(orjson.dumps({KEY: ["a"], "other.key": 1}))
        settings = ScopedSettings(global_path=path)
        settings.on_did_change(events.append)

        assert await settings.reload() is None
        path.write_bytes(orjson.dumps({KEY: ["a", "b"], "other.key": 1}))
        event = await settings.reload()
        assert event.keys == frozenset({KEY})
        assert settings.get(KEY) == ["a", "b"]
        assert events == [event]

    @pytest.mark.asyncio
    async def test_failed_write_leaves_tier_unchanged(self, tmp_path, events):
        blocker = tmp_path / "file"
        blocker.write_text("")
        settings = ScopedSettings(
            global_values={KEY: ["a"]}, global_path=blocker / "settings.json"
        )
        settings.on_did_change(events.append)
        with pytest.raises(StorageIOError):
            await settings.update(KEY, ["a", "b"])
        assert settings.get(KEY) == ["a"]
        assert events == []


class TestChangeEvent:
    """Section matching of change events."""

    def test_affects(self):
        event = SettingsChangeEvent([KEY])
        assert event.affects(KEY)
        assert event.affects("navigator_secrets")
        assert not event.affects("navigator_secrets.other")
        assert not event.affects("navigator")

    def test_parent_key_change_affects_children(self):
        event = SettingsChangeEvent(["navigator_secrets"])
        assert event.affects(KEY)
