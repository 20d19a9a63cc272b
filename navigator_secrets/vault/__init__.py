"""Secrets Vault — Collections of secrets projected into the environment.

Security Note (Threat Model):
    Secrets are kept in plaintext, in process memory and in the storage
    backend. The Vault assumes a single trusted local user; encryption at
    rest, access control and sharing are out of scope.
"""

from .secrets_vault import Vault
from .config import VaultConfig
from .storage import SecretStorage, MemoryStorage, FileStorage
from .settings import ScopedSettings, ConfigurationTarget, SettingsChangeEvent
from .environment import EnvironmentCollection, EnvironmentOverlay, ProcessEnvironment
from .payload import parse_document, load_document
from .transfer import default_export_path

__all__ = [
    "Vault",
    "VaultConfig",
    "SecretStorage",
    "MemoryStorage",
    "FileStorage",
    "ScopedSettings",
    "ConfigurationTarget",
    "SettingsChangeEvent",
    "EnvironmentCollection",
    "EnvironmentOverlay",
    "ProcessEnvironment",
    "parse_document",
    "load_document",
    "default_export_path",
]
