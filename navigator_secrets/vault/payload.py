"""
Vault Payload — Parsing and validation of the persisted vault document.

The document is a JSON object mapping collection names to objects of
``{KEY: "value"}``. Two readers exist with deliberately different
strictness:

- ``load_document()`` — used on startup and on storage change events;
  never fails, falls back to the seed document.
- ``parse_document()`` — used by imports; rejects anything that is not a
  valid vault document with ``InvalidFormat``.

Security Note:
    Error messages name collections and keys, never values.
"""
import logging
from typing import Optional, Union

import orjson
from pydantic import (
    RootModel,
    StrictStr,
    ValidationError,
    ValidationInfo,
    model_validator,
)

from ..data import is_valid_key
from ..exceptions import InvalidFormat

logger = logging.getLogger("navigator.secrets")

EMPTY_DOCUMENT = "{}"


class VaultDocument(RootModel[dict[str, dict[str, StrictStr]]]):
    """Schema of the persisted (and imported) vault document."""

    @model_validator(mode="after")
    def validate_names(self, info: ValidationInfo) -> "VaultDocument":
        """Collection names must be non-empty; keys follow the env grammar."""
        strict_keys = bool((info.context or {}).get("strict_keys", True))
        for name, secrets in self.root.items():
            if not name:
                raise ValueError("Collection names cannot be empty")
            if strict_keys:
                for key in secrets:
                    if not is_valid_key(key):
                        raise ValueError(
                            f"Invalid secret key {key!r} in collection {name!r}"
                        )
        return self


def _decode(content: Union[str, bytes]) -> object:
    return orjson.loads(content)


def is_flat_document(data: object) -> bool:
    """A non-empty object of plain strings is the single-collection shape."""
    return (
        isinstance(data, dict)
        and bool(data)
        and all(isinstance(v, str) for v in data.values())
    )


def parse_document(
    content: Union[str, bytes],
    strict_keys: bool = True
) -> dict[str, dict[str, str]]:
    """Parse and validate a vault document.

    Args:
        content: JSON text of the document.
        strict_keys: Enforce the environment-variable grammar on keys.

    Returns:
        Mapping of collection name to ``{key: value}``, in document order.

    Raises:
        InvalidFormat: If the content is not JSON or not a vault document.
    """
    try:
        data = _decode(content)
    except orjson.JSONDecodeError as err:
        raise InvalidFormat(f"Vault document is not valid JSON: {err}") from err
    if not isinstance(data, dict):
        raise InvalidFormat(
            f"Vault document must be a JSON object, got {type(data).__name__}"
        )
    try:
        document = VaultDocument.model_validate(
            data, context={"strict_keys": strict_keys}
        )
    except ValidationError as err:
        raise InvalidFormat(
            f"Invalid vault document ({err.error_count()} error(s)): "
            f"{_summary(err)}"
        ) from err
    return document.root


def load_document(
    content: Optional[str],
    default_collection: str,
    seed: dict[str, dict[str, str]],
) -> tuple[dict[str, dict[str, str]], bool]:
    """Read the stored document, recovering from anything unusable.

    Args:
        content: Raw stored payload, or None when nothing is stored.
        default_collection: Collection receiving a flat (legacy) document.
        seed: Document used when the payload is absent or unparseable.

    Returns:
        Tuple of (document, recovered). ``recovered`` is True when the seed
        was used instead of the stored payload.
    """
    if content is None:
        return _copy(seed), True
    try:
        data = _decode(content)
    except orjson.JSONDecodeError as err:
        logger.warning("Stored vault payload is not valid JSON, using seed: %s", err)
        return _copy(seed), True
    if is_flat_document(data):
        logger.info(
            "Reading flat vault payload into collection %s", default_collection
        )
        data = {default_collection: data}
    try:
        document = VaultDocument.model_validate(
            data, context={"strict_keys": False}
        )
    except ValidationError as err:
        logger.warning(
            "Stored vault payload is not a vault document, using seed: %s",
            _summary(err),
        )
        return _copy(seed), True
    return document.root, False


def _copy(document: dict[str, dict[str, str]]) -> dict[str, dict[str, str]]:
    return {name: dict(secrets) for name, secrets in document.items()}


def _summary(err: ValidationError) -> str:
    """Describe validation errors by location only (no input values)."""
    parts = []
    for error in err.errors(include_input=False):
        loc = ".".join(str(p) for p in error.get("loc", ()))
        parts.append(f"{loc or '<root>'}: {error.get('msg')}")
    return "; ".join(parts)
