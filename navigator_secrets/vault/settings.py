"""
Scoped Settings — Two-tier (workspace over global) configuration store.

Holds the enabled-set of the Vault. Values are resolved at read time:
the workspace tier wins when a workspace is open and defines the key,
otherwise the global (user) tier, otherwise the caller's default.

Each tier is a flat mapping of dotted keys, e.g.::

    {"navigator_secrets.enabledCollections": ["default", "staging"]}

optionally persisted to a JSON file.
"""
import copy
import asyncio
import logging
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Optional, Union

import orjson

from ..exceptions import StorageIOError

logger = logging.getLogger("navigator.secrets")

_MISSING = object()


class ConfigurationTarget(Enum):
    GLOBAL = "global"
    WORKSPACE = "workspace"


class SettingsChangeEvent:
    """Describes which dotted keys changed."""

    def __init__(self, keys, target: Optional[ConfigurationTarget] = None):
        self.keys = frozenset(keys)
        self.target = target

    def affects(self, section: str) -> bool:
        """True if ``section`` is one of the changed keys, a parent or a child of one."""
        for key in self.keys:
            if (
                key == section
                or key.startswith(section + ".")
                or section.startswith(key + ".")
            ):
                return True
        return False

    def __repr__(self) -> str:
        return f"<SettingsChangeEvent keys={sorted(self.keys)}>"


SettingsListener = Callable[[SettingsChangeEvent], Any]


class ScopedSettings:
    """Configuration with a global tier and an optional workspace tier.

    Args:
        global_values: Initial values of the global tier.
        workspace_values: Initial values of the workspace tier. Passing a
            mapping (even empty) or a ``workspace_path`` means a workspace
            is open.
        global_path: JSON file persisting the global tier.
        workspace_path: JSON file persisting the workspace tier.
    """

    def __init__(
        self,
        global_values: Optional[dict[str, Any]] = None,
        workspace_values: Optional[dict[str, Any]] = None,
        global_path: Union[str, Path, None] = None,
        workspace_path: Union[str, Path, None] = None,
    ):
        self._paths: dict[ConfigurationTarget, Optional[Path]] = {
            ConfigurationTarget.GLOBAL: Path(global_path).expanduser() if global_path else None,
            ConfigurationTarget.WORKSPACE: Path(workspace_path).expanduser() if workspace_path else None,
        }
        self._has_workspace = (
            workspace_values is not None or workspace_path is not None
        )
        self._tiers: dict[ConfigurationTarget, dict[str, Any]] = {
            ConfigurationTarget.GLOBAL: self._read_tier(ConfigurationTarget.GLOBAL),
            ConfigurationTarget.WORKSPACE: self._read_tier(ConfigurationTarget.WORKSPACE),
        }
        if global_values:
            self._tiers[ConfigurationTarget.GLOBAL].update(copy.deepcopy(global_values))
        if workspace_values:
            self._tiers[ConfigurationTarget.WORKSPACE].update(
                copy.deepcopy(workspace_values)
            )
        self._listeners: list[SettingsListener] = []

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _read_tier(self, target: ConfigurationTarget) -> dict[str, Any]:
        path = self._paths[target]
        if path is None or not path.exists():
            return {}
        try:
            data = orjson.loads(path.read_bytes())
        except orjson.JSONDecodeError as err:
            logger.warning("Ignoring unreadable %s settings %s: %s", target.value, path, err)
            return {}
        if not isinstance(data, dict):
            logger.warning("Ignoring %s settings %s: not a JSON object", target.value, path)
            return {}
        return data

    def _write_tier(self, target: ConfigurationTarget, values: dict) -> None:
        path = self._paths[target]
        if path is None:
            return
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(orjson.dumps(values, option=orjson.OPT_INDENT_2))
        except OSError as exc:
            raise StorageIOError(
                f"Cannot write {target.value} settings to {path}: {exc}"
            ) from exc

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    @property
    def has_workspace(self) -> bool:
        return self._has_workspace

    @property
    def authoritative_target(self) -> ConfigurationTarget:
        """Tier receiving writes when the caller does not name one."""
        if self._has_workspace:
            return ConfigurationTarget.WORKSPACE
        return ConfigurationTarget.GLOBAL

    def get(self, key: str, default: Any = None) -> Any:
        value = _MISSING
        if self._has_workspace:
            value = self._tiers[ConfigurationTarget.WORKSPACE].get(key, _MISSING)
        if value is _MISSING:
            value = self._tiers[ConfigurationTarget.GLOBAL].get(key, _MISSING)
        if value is _MISSING:
            return copy.deepcopy(default)
        return copy.deepcopy(value)

    def inspect(self, key: str) -> dict[str, Any]:
        """Return the raw value of ``key`` in every tier (None when unset)."""
        return {
            target.value: copy.deepcopy(self._tiers[target].get(key))
            for target in ConfigurationTarget
        }

    # ------------------------------------------------------------------
    # Write side
    # ------------------------------------------------------------------

    async def update(
        self,
        key: str,
        value: Any,
        target: Optional[ConfigurationTarget] = None
    ) -> None:
        """Set ``key`` in one tier; ``None`` removes it from that tier.

        Raises:
            ValueError: If the workspace tier is targeted but no workspace is open.
            StorageIOError: If the tier file cannot be written; the tier is left
                unchanged.
        """
        target = target or self.authoritative_target
        if target is ConfigurationTarget.WORKSPACE and not self._has_workspace:
            raise ValueError("Cannot write workspace settings: no workspace is open")
        tier = dict(self._tiers[target])
        previous = tier.get(key, _MISSING)
        if value is None:
            if previous is _MISSING:
                return
            del tier[key]
        else:
            if previous is not _MISSING and previous == value:
                return
            tier[key] = copy.deepcopy(value)
        await asyncio.to_thread(self._write_tier, target, tier)
        self._tiers[target] = tier
        logger.debug("Settings update: %s in %s tier", key, target.value)
        self._fire(SettingsChangeEvent([key], target))

    async def reload(self) -> Optional[SettingsChangeEvent]:
        """Re-read the tier files, notifying about keys edited on disk."""
        changed: set[str] = set()
        for target in ConfigurationTarget:
            if self._paths[target] is None:
                continue
            fresh = await asyncio.to_thread(self._read_tier, target)
            current = self._tiers[target]
            changed.update(
                k for k in current.keys() | fresh.keys()
                if current.get(k, _MISSING) != fresh.get(k, _MISSING)
            )
            self._tiers[target] = fresh
        if not changed:
            return None
        event = SettingsChangeEvent(changed)
        self._fire(event)
        return event

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def on_did_change(self, listener: SettingsListener) -> Callable[[], None]:
        """Register a change listener; returns a callable removing it."""
        self._listeners.append(listener)

        def dispose() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)
        return dispose

    def _fire(self, event: SettingsChangeEvent) -> None:
        for listener in list(self._listeners):
            listener(event)
