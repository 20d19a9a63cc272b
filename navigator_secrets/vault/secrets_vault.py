"""
Vault — Collections of secrets projected into an environment.

Provides the public API used by presentation and command layers:
- ``store(collection, key, value)`` / ``get()`` / ``delete()`` — secrets
- ``add_collection()`` / ``delete_collection()`` — collections
- ``toggle_collection()`` / ``enable_collection()`` / ``disable_collection()``
- ``list_collections()`` / ``active_secrets()`` — read-only views
- ``refresh()`` / ``reconcile()`` — environment projection
- ``import_from()`` / ``export_to()`` — whole-document transfer
- ``on_change()`` — notifications after every projection pass
- ``create()`` — factory loading state and subscribing to change events

Every mutation and every event-driven reload runs under a single lock, so
they are applied one at a time in arrival order. Each mutation rewrites
the whole document in the storage; if that write fails the in-memory
state is restored and the error propagates.

Security Note:
    Never log secret values. Only log collection names, key names and
    operations.
"""
import asyncio
import logging
from typing import Any, Callable, Optional

from ..data import (
    VaultState,
    ActiveSecret,
    CollectionInfo,
    SecretInfo,
    validate_secret_key,
    validate_collection_name,
)
from ..exceptions import (
    CollectionExists,
    CollectionNotFound,
    StorageIOError,
    VaultError,
)
from .config import VaultConfig
from .environment import EnvironmentCollection
from .payload import EMPTY_DOCUMENT, load_document, parse_document
from .settings import ConfigurationTarget, ScopedSettings, SettingsChangeEvent
from .storage import SecretStorage
from .transfer import read_document, write_document

logger = logging.getLogger("navigator.secrets")

ChangeCallback = Callable[["Vault"], Any]


class Vault:
    """Secret collections with environment projection.

    State lives in three places:
    - the **document** (collections and secrets), persisted in a
      ``SecretStorage`` under ``config.storage_key`` and mirrored in memory;
    - the **enabled-set**, an ordered list of collection names kept in the
      ``ScopedSettings`` under ``config.enabled_key``;
    - the **environment**, an ``EnvironmentCollection`` reconciled to hold
      exactly the secrets of the enabled collections.

    Use ``await Vault.create(...)`` rather than the constructor.
    """

    def __init__(
        self,
        storage: SecretStorage,
        environment: EnvironmentCollection,
        settings: Optional[ScopedSettings] = None,
        config: Optional[VaultConfig] = None,
    ):
        self._storage = storage
        self._env = environment
        self._settings = settings if settings is not None else ScopedSettings()
        self._config = config or VaultConfig()
        self._state = VaultState()
        self._enabled: list[str] = []
        self._persisted: Optional[str] = None  # last payload read or written
        self._lock = asyncio.Lock()
        self._pending: set[asyncio.Task] = set()
        self._listeners: list[ChangeCallback] = []
        self._disposables: list[Callable[[], None]] = []

    # ------------------------------------------------------------------
    # Factory
    # ------------------------------------------------------------------

    @classmethod
    async def create(
        cls,
        storage: SecretStorage,
        environment: EnvironmentCollection,
        settings: Optional[ScopedSettings] = None,
        config: Optional[VaultConfig] = None,
    ) -> "Vault":
        """Load the document and enabled-set, project, then subscribe.

        Args:
            storage: Persistent store holding the vault document.
            environment: Sink receiving the enabled secrets.
            settings: Configuration holding the enabled-set.
            config: Vault settings; defaults to ``VaultConfig()``.

        Returns:
            Ready Vault instance.

        Raises:
            StorageIOError: If the storage cannot be read.
        """
        vault = cls(storage, environment, settings=settings, config=config)
        async with vault._lock:
            await vault._load_state()
            vault._load_enabled()
            vault._reconcile()
        vault._disposables.append(storage.on_did_change(vault._on_storage_change))
        vault._disposables.append(
            vault._settings.on_did_change(vault._on_settings_change)
        )
        logger.info(
            "Vault loaded: %d collection(s), %d enabled, %d active secret(s)",
            len(vault._state), len(vault._enabled), len(vault.active_secrets()),
        )
        return vault

    async def close(self) -> None:
        """Stop listening to change events and wait for pending reloads."""
        for dispose in self._disposables:
            dispose()
        self._disposables.clear()
        await self.settle()

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def config(self) -> VaultConfig:
        return self._config

    @property
    def settings(self) -> ScopedSettings:
        return self._settings

    @property
    def environment(self) -> EnvironmentCollection:
        return self._env

    @property
    def state(self) -> VaultState:
        return self._state

    @property
    def enabled(self) -> list[str]:
        """Enabled collection names, in projection order."""
        return list(self._enabled)

    def is_enabled(self, name: str) -> bool:
        return name in self._enabled

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    async def _read_payload(self) -> Optional[str]:
        try:
            return await self._storage.get(self._config.storage_key)
        except StorageIOError:
            raise
        except OSError as err:
            raise StorageIOError(f"Cannot read vault storage: {err}") from err

    async def _load_state(self) -> None:
        content = await self._read_payload()
        document, recovered = load_document(
            content,
            self._config.default_collection,
            self._config.seed_state(),
        )
        self._state = VaultState(document, new=recovered)
        self._persisted = content

    def _configured_enabled(self) -> list[str]:
        """Enabled-set as currently resolved by the settings."""
        value = self._settings.get(
            self._config.enabled_key, self._config.default_enabled
        )
        if not isinstance(value, list):
            logger.warning(
                "Setting %s is not a list, using default", self._config.enabled_key
            )
            value = list(self._config.default_enabled)
        return [name for name in value if isinstance(name, str)]

    def _load_enabled(self) -> None:
        self._enabled = self._configured_enabled()

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    async def _persist(self, snapshot: VaultState) -> None:
        """Write the whole document; restore ``snapshot`` if the write fails."""
        payload = self._state.encode()
        previous = self._persisted
        self._persisted = payload
        try:
            await self._storage.store(self._config.storage_key, payload)
        except OSError as err:
            self._persisted = previous
            self._state.restore(snapshot)
            logger.error("Vault persist failed, state restored: %s", err)
            if isinstance(err, StorageIOError):
                raise
            raise StorageIOError(f"Cannot write vault storage: {err}") from err
        self._state.is_changed = False

    async def _write_enabled(
        self,
        names: list[str],
        target: Optional[ConfigurationTarget] = None
    ) -> None:
        await self._settings.update(self._config.enabled_key, names, target)

    # ------------------------------------------------------------------
    # Secrets
    # ------------------------------------------------------------------

    def get(self, collection: str, key: str, default: Any = None) -> Any:
        """Return a secret value, or ``default`` if collection or key is missing."""
        return self._state.get_secret(collection, key, default)

    async def store(self, collection: str, key: str, value: str) -> None:
        """Insert or overwrite a secret in an existing collection.

        Raises:
            InvalidSecretKey: If key is not a valid environment variable name.
            CollectionNotFound: If the collection does not exist.
            StorageIOError: If the document cannot be persisted.
        """
        validate_secret_key(key)
        if not isinstance(value, str):
            raise TypeError(
                f"Secret value must be a string, got {type(value).__name__}"
            )
        async with self._lock:
            snapshot = self._state.copy()
            self._state.set_secret(collection, key, value)
            await self._persist(snapshot)
            self._reconcile()
        logger.debug("Vault store: collection=%s key=%s", collection, key)

    async def delete(self, collection: str, key: str) -> None:
        """Remove a secret; the collection stays, even when left empty.

        Raises:
            CollectionNotFound: If the collection does not exist.
            SecretNotFound: If the key is not in the collection.
        """
        async with self._lock:
            snapshot = self._state.copy()
            self._state.del_secret(collection, key)
            await self._persist(snapshot)
            self._reconcile()
        logger.debug("Vault delete: collection=%s key=%s", collection, key)

    # ------------------------------------------------------------------
    # Collections
    # ------------------------------------------------------------------

    async def add_collection(self, name: str) -> None:
        """Create an empty collection and enable it.

        Raises:
            CollectionExists: If a collection with that name exists.
            StorageIOError: If the document or the enabled-set cannot be written.
        """
        validate_collection_name(name)
        async with self._lock:
            if name in self._state:
                raise CollectionExists(f"Collection {name!r} already exists")
            snapshot = self._state.copy()
            self._state.add_collection(name)
            await self._persist(snapshot)
            self._load_enabled()
            try:
                if name not in self._enabled:
                    enabled = [*self._enabled, name]
                    await self._write_enabled(enabled)
                    self._enabled = enabled
            finally:
                self._reconcile()
        logger.debug("Vault add collection: %s", name)

    async def delete_collection(self, name: str) -> None:
        """Remove a collection with all its secrets, and forget it was enabled.

        The name is cleared from every settings tier, not only the
        authoritative one.

        Raises:
            CollectionNotFound: If the collection does not exist.
        """
        async with self._lock:
            if name not in self._state:
                raise CollectionNotFound(f"Collection {name!r} not found")
            snapshot = self._state.copy()
            self._state.remove_collection(name)
            await self._persist(snapshot)
            await self._forget_enabled(name)
            self._reconcile()
        logger.debug("Vault delete collection: %s", name)

    async def _forget_enabled(self, name: str) -> None:
        key = self._config.enabled_key
        targets = [ConfigurationTarget.GLOBAL]
        if self._settings.has_workspace:
            targets.append(ConfigurationTarget.WORKSPACE)
        tiers = self._settings.inspect(key)
        for target in targets:
            current = tiers[target.value]
            if isinstance(current, list) and name in current:
                await self._write_enabled(
                    [n for n in current if n != name], target
                )
        self._load_enabled()
        if name in self._enabled:
            # still enabled through the default value
            self._enabled = [n for n in self._enabled if n != name]
            await self._write_enabled(self._enabled)

    async def toggle_collection(self, name: str) -> None:
        """Flip a collection between enabled and disabled.

        Only the settings are written here; the environment follows once
        the settings change event is processed (see ``settle()``).
        """
        async with self._lock:
            names = self._configured_enabled()
            if name in names:
                names = [n for n in names if n != name]
            else:
                names.append(name)
            await self._write_enabled(names)
        logger.debug("Vault toggle collection: %s", name)

    async def enable_collection(self, name: str) -> None:
        async with self._lock:
            names = self._configured_enabled()
            if name in names:
                return
            await self._write_enabled([*names, name])
        logger.debug("Vault enable collection: %s", name)

    async def disable_collection(self, name: str) -> None:
        async with self._lock:
            names = self._configured_enabled()
            if name not in names:
                return
            await self._write_enabled([n for n in names if n != name])
        logger.debug("Vault disable collection: %s", name)

    def list_collections(self, enabled: Optional[bool] = None) -> list[CollectionInfo]:
        """Describe collections in document order.

        Args:
            enabled: When given, only list collections with that status.
        """
        result = []
        for name in self._state:
            is_enabled = self.is_enabled(name)
            if enabled is not None and is_enabled != enabled:
                continue
            result.append(
                CollectionInfo(
                    name=name,
                    enabled=is_enabled,
                    secrets=[
                        SecretInfo(collection=name, key=key)
                        for key in self._state[name]
                    ],
                )
            )
        return result

    # ------------------------------------------------------------------
    # Projection
    # ------------------------------------------------------------------

    def active_secrets(self) -> dict[str, ActiveSecret]:
        """Secrets of the enabled collections, keyed by secret key.

        Collections are visited in enabled-set order; when two enabled
        collections define the same key the later one wins. Enabled names
        with no matching collection contribute nothing.
        """
        active: dict[str, ActiveSecret] = {}
        for name in self._enabled:
            if name not in self._state:
                continue
            for key, value in self._state[name].items():
                active[key] = ActiveSecret(key=key, collection=name, value=value)
        return active

    def _reconcile(self) -> dict[str, int]:
        active = self.active_secrets()
        removed = 0
        for name in self._env.keys():
            if name not in active and self._env.delete(name):
                removed += 1
        replaced = 0
        for key, secret in active.items():
            if self._env.replace(key, secret.value):
                replaced += 1
        if removed or replaced:
            logger.debug(
                "Environment reconciled: %d removed, %d set", removed, replaced
            )
        self._notify()
        return {"removed": removed, "replaced": replaced, "active": len(active)}

    async def reconcile(self) -> dict[str, int]:
        """Make the environment hold exactly the active secrets.

        Returns:
            Stats dict with keys: removed, replaced, active.
        """
        async with self._lock:
            return self._reconcile()

    async def refresh(self) -> dict[str, int]:
        """Reload document and enabled-set, then reconcile."""
        async with self._lock:
            await self._load_state()
            self._load_enabled()
            return self._reconcile()

    # ------------------------------------------------------------------
    # Import / Export
    # ------------------------------------------------------------------

    async def export_to(self, destination) -> Any:
        """Write the stored document, verbatim, to ``destination``.

        Returns:
            The destination path.
        """
        content = await self._read_payload()
        path = await write_document(
            destination, content if content is not None else EMPTY_DOCUMENT
        )
        logger.info("Vault exported to %s", path)
        return path

    async def import_from(self, source) -> None:
        """Replace every collection with the ones of a document file.

        The enabled-set is not changed: imported collections not already
        enabled stay disabled.

        Raises:
            InvalidFormat: If the file is not a valid vault document; the
                current state and storage are left untouched.
        """
        content = await read_document(source)
        document = parse_document(content, strict_keys=self._config.strict_import)
        async with self._lock:
            snapshot = self._state.copy()
            self._state.replace(document)
            await self._persist(snapshot)
            self._reconcile()
        logger.info("Vault imported %d collection(s) from %s", len(document), source)

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def on_change(self, callback: ChangeCallback) -> Callable[[], None]:
        """Call ``callback(vault)`` after every projection pass.

        Returns:
            Callable removing the callback.
        """
        self._listeners.append(callback)

        def dispose() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)
        return dispose

    def _notify(self) -> None:
        for callback in list(self._listeners):
            try:
                result = callback(self)
            except Exception as err:
                logger.error(
                    "Vault change listener %r failed: %s", callback, err
                )
                continue
            if asyncio.iscoroutine(result):
                self._schedule(result)

    def _schedule(self, coro) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def settle(self) -> None:
        """Wait until every scheduled event-driven reload has completed."""
        while self._pending:
            await asyncio.gather(*list(self._pending))

    def _on_storage_change(self, key: str) -> None:
        if key == self._config.storage_key:
            self._schedule(self._reload_state())

    def _on_settings_change(self, event: SettingsChangeEvent) -> None:
        if event.affects(self._config.enabled_key):
            self._schedule(self._reload_enabled())

    async def _reload_state(self) -> None:
        async with self._lock:
            try:
                content = await self._read_payload()
            except VaultError as err:
                logger.error("Vault reload after storage change failed: %s", err)
                return
            if content == self._persisted:
                return
            logger.info("Vault document changed in storage, reloading")
            document, _ = load_document(
                content,
                self._config.default_collection,
                self._config.seed_state(),
            )
            self._state = VaultState(document)
            self._persisted = content
            self._reconcile()

    async def _reload_enabled(self) -> None:
        async with self._lock:
            self._load_enabled()
            self._reconcile()
