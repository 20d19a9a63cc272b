"""Navigator Secrets.

Named collections of secrets, projected into process environments.
"""
from .version import __version__
from .data import VaultState, ActiveSecret, CollectionInfo, SecretInfo
from .exceptions import (
    VaultError,
    NotFound,
    CollectionNotFound,
    SecretNotFound,
    AlreadyExists,
    CollectionExists,
    InvalidSecretKey,
    InvalidFormat,
    StorageIOError,
)
from .vault import (
    Vault,
    VaultConfig,
    MemoryStorage,
    FileStorage,
    ScopedSettings,
    ConfigurationTarget,
    EnvironmentOverlay,
    ProcessEnvironment,
)

__all__ = (
    "__version__",
    "Vault",
    "VaultConfig",
    "VaultState",
    "ActiveSecret",
    "CollectionInfo",
    "SecretInfo",
    "MemoryStorage",
    "FileStorage",
    "ScopedSettings",
    "ConfigurationTarget",
    "EnvironmentOverlay",
    "ProcessEnvironment",
    "VaultError",
    "NotFound",
    "CollectionNotFound",
    "SecretNotFound",
    "AlreadyExists",
    "CollectionExists",
    "InvalidSecretKey",
    "InvalidFormat",
    "StorageIOError",
)
