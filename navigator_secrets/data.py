import re
import copy
from types import MappingProxyType
from typing import Optional, Any
from collections.abc import Iterator, Mapping, MutableMapping
import orjson
from pydantic import BaseModel, Field
from .exceptions import (
    CollectionNotFound,
    SecretNotFound,
    InvalidSecretKey,
)


# Environment-variable name grammar.
SECRET_KEY_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def is_valid_key(key: Any) -> bool:
    return isinstance(key, str) and SECRET_KEY_PATTERN.fullmatch(key) is not None


def validate_secret_key(key: Any) -> str:
    """Ensure ``key`` can be used as an environment variable name.

    Raises:
        InvalidSecretKey: If key does not match ``[A-Za-z_][A-Za-z0-9_]*``.
    """
    if not is_valid_key(key):
        raise InvalidSecretKey(f"Invalid secret key: {key!r}")
    return key


def validate_collection_name(name: Any) -> str:
    """Collection names are free-form but must be non-empty strings."""
    if not isinstance(name, str) or not name:
        raise InvalidSecretKey(
            f"Collection name must be a non-empty string, got {name!r}"
        )
    return name


class SecretInfo(BaseModel):
    """Reference to a secret, without its value."""

    collection: str
    key: str

    model_config = {"frozen": True}


class CollectionInfo(BaseModel):
    """Descriptor of a collection as shown to presentation layers."""

    name: str
    enabled: bool = False
    secrets: list[SecretInfo] = Field(default_factory=list)

    model_config = {"frozen": True}


class ActiveSecret(BaseModel):
    """A secret projected into the environment, and the collection owning it."""

    key: str
    collection: str
    value: str = Field(repr=False)

    model_config = {"frozen": True}


class VaultState(MutableMapping[str, Mapping[str, str]]):
    """In-memory mirror of the persisted vault document.

    Maps collection names to ``{key: value}`` secret mappings, keeping the
    insertion order of both levels. Item access returns read-only views;
    secrets are changed through ``set_secret`` / ``del_secret`` so the
    ``changed`` flag and the key grammar are always honored.
    """

    def __init__(
        self,
        data: Optional[Mapping[str, Mapping[str, str]]] = None,
        new: bool = False
    ) -> None:
        self._data: dict[str, dict[str, str]] = {}
        self._changed = bool(new)
        self._new = new
        if data:
            for name, secrets in data.items():
                self._data[validate_collection_name(name)] = dict(secrets)

    def __repr__(self) -> str:
        # values are never part of the representation
        keys = {name: list(secrets) for name, secrets in self._data.items()}
        return (
            f'<NAV-Vault [new:{self._new}, changed:{self._changed}] '
            f'collections={keys!r}>'
        )

    # --- Properties ---

    @property
    def new(self) -> bool:
        return self._new

    @property
    def empty(self) -> bool:
        return not bool(self._data)

    @property
    def is_changed(self) -> bool:
        return self._changed

    @is_changed.setter
    def is_changed(self, value: bool) -> None:
        self._changed = value

    def changed(self) -> None:
        self._changed = True

    # --- Collections ---

    def collection(self, name: str) -> Mapping[str, str]:
        """Return a read-only view of a collection.

        Raises:
            CollectionNotFound: If the collection does not exist.
        """
        try:
            return MappingProxyType(self._data[name])
        except KeyError:
            raise CollectionNotFound(f"Collection {name!r} not found") from None

    def add_collection(self, name: str) -> None:
        self._data[validate_collection_name(name)] = {}
        self._changed = True

    def remove_collection(self, name: str) -> None:
        try:
            del self._data[name]
        except KeyError:
            raise CollectionNotFound(f"Collection {name!r} not found") from None
        self._changed = True

    # --- Secrets ---

    def get_secret(self, collection: str, key: str, default: Any = None) -> Any:
        return self._data.get(collection, {}).get(key, default)

    def set_secret(self, collection: str, key: str, value: str) -> None:
        """Insert or overwrite a secret in an existing collection."""
        validate_secret_key(key)
        if not isinstance(value, str):
            raise TypeError(
                f"Secret value must be a string, got {type(value).__name__}"
            )
        if collection not in self._data:
            raise CollectionNotFound(f"Collection {collection!r} not found")
        self._data[collection][key] = value
        self._changed = True

    def del_secret(self, collection: str, key: str) -> None:
        secrets = self._data.get(collection)
        if secrets is None:
            raise CollectionNotFound(f"Collection {collection!r} not found")
        try:
            del secrets[key]
        except KeyError:
            raise SecretNotFound(
                f"Secret {key!r} not found in collection {collection!r}"
            ) from None
        self._changed = True

    # --- Snapshots & serialization ---

    def state_data(self) -> dict[str, dict[str, str]]:
        """Return the plain mapping (for persistence)."""
        return self._data

    def copy(self) -> "VaultState":
        state = VaultState(new=self._new)
        state._data = copy.deepcopy(self._data)
        state._changed = self._changed
        return state

    def restore(self, snapshot: "VaultState") -> None:
        """Replace contents with the ones of a previous ``copy()``."""
        self._data = copy.deepcopy(snapshot._data)
        self._changed = snapshot._changed

    def replace(self, data: Mapping[str, Mapping[str, str]]) -> None:
        """Replace every collection at once (whole-document import)."""
        self._data = {
            validate_collection_name(name): dict(secrets)
            for name, secrets in data.items()
        }
        self._changed = True

    def encode(self) -> str:
        """Serialize the whole document to JSON text.

        Raises:
            RuntimeError: Error converting data to json.
        """
        try:
            return orjson.dumps(self._data).decode("utf-8")
        except orjson.JSONEncodeError as err:
            raise RuntimeError(err) from err

    # --- Magic Methods ---

    def __len__(self) -> int:
        return len(self._data)

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __contains__(self, name: object) -> bool:
        return name in self._data

    def __getitem__(self, name: str) -> Mapping[str, str]:
        return self.collection(name)

    def __setitem__(self, name: str, secrets: Mapping[str, str]) -> None:
        validate_collection_name(name)
        collection: dict[str, str] = {}
        for key, value in secrets.items():
            validate_secret_key(key)
            if not isinstance(value, str):
                raise TypeError(
                    f"Secret value for {key!r} must be a string"
                )
            collection[key] = value
        self._data[name] = collection
        self._changed = True

    def __delitem__(self, name: str) -> None:
        self.remove_collection(name)
