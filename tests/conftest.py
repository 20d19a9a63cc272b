import orjson
import pytest
import pytest_asyncio

from navigator_secrets.exceptions import StorageIOError
from navigator_secrets.vault import (
    Vault,
    VaultConfig,
    MemoryStorage,
    ScopedSettings,
    EnvironmentOverlay,
)

ENABLED_KEY = VaultConfig().enabled_key


class FlakyStorage(MemoryStorage):
    """MemoryStorage whose reads or writes can be made to fail."""

    def __init__(self, data=None):
        super().__init__(data)
        self.fail_reads = False
        self.fail_writes = False
        self.writes = 0

    async def get(self, key):
        if self.fail_reads:
            raise StorageIOError("storage unavailable")
        return await super().get(key)

    async def store(self, key, value):
        if self.fail_writes:
            raise OSError("disk full")
        self.writes += 1
        await super().store(key, value)


def dump(document) -> str:
    return orjson.dumps(document).decode("utf-8")


@pytest.fixture
def storage():
    """Empty in-memory storage."""
    return FlakyStorage()


@pytest.fixture
def overlay():
    return EnvironmentOverlay()


@pytest.fixture
def settings():
    """Settings without a workspace (global tier only)."""
    return ScopedSettings()


@pytest.fixture
def storage_with():
    """Factory of storages already holding a vault document."""
    def factory(document) -> FlakyStorage:
        return FlakyStorage({"vault": dump(document)})
    return factory


@pytest_asyncio.fixture
async def make_vault(overlay, settings):
    """Factory creating vaults, closed at teardown."""
    created = []

    async def factory(storage=None, env=None, settings_=None, config=None):
        vault = await Vault.create(
            storage if storage is not None else FlakyStorage(),
            env if env is not None else overlay,
            settings=settings_ if settings_ is not None else settings,
            config=config,
        )
        created.append(vault)
        return vault

    yield factory
    for vault in created:
        await vault.close()


@pytest_asyncio.fixture
async def vault(make_vault, storage):
    """Vault over an empty storage: only the seed collection exists."""
    return await make_vault(storage=storage)
