"""
Vault Exceptions — Failure signals raised by the secrets Vault.

Every failure a caller can act upon derives from ``VaultError``; the
builtin bases (``KeyError``, ``ValueError``, ``OSError``) are kept so
callers that only know the builtins still catch them.
"""


class VaultError(Exception):
    """Base class for every Vault failure."""


class NotFound(VaultError, KeyError):
    """A collection or secret that does not exist was addressed."""

    def __str__(self) -> str:
        # KeyError quotes its argument; keep the plain message.
        return str(self.args[0]) if self.args else ""


class CollectionNotFound(NotFound):
    """The named collection is not part of the vault."""


class SecretNotFound(NotFound):
    """The key is not present in the collection."""


class AlreadyExists(VaultError):
    """The object to create is already present."""


class CollectionExists(AlreadyExists):
    """A collection with that name is already part of the vault."""


class InvalidSecretKey(VaultError, ValueError):
    """A secret key or collection name does not follow the naming rules."""


class InvalidFormat(VaultError, ValueError):
    """An imported document is not a valid vault payload."""


class StorageIOError(VaultError, OSError):
    """The persistent secret storage could not be read or written."""
