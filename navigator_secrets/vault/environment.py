"""
Environment Collections — Sinks receiving the projected secrets.

A sink is an enumerable set of environment variables owned exclusively by
the Vault. Only real changes (a new value, a removal) count as changes;
replacing a variable with the value it already holds is a no-op, which
keeps reconciliation passes idempotent.
"""
import os
import logging
from abc import ABC, abstractmethod
from collections.abc import Iterator, Mapping, MutableMapping
from typing import Optional

logger = logging.getLogger("navigator.secrets")


class EnvironmentCollection(ABC):
    """Enumerable environment overlay."""

    def __init__(self) -> None:
        self.revision = 0

    @abstractmethod
    def __iter__(self) -> Iterator[str]:
        """Iterate the variable names currently in the collection."""

    @abstractmethod
    def get(self, name: str) -> Optional[str]:
        """Return the value of ``name`` or None."""

    @abstractmethod
    def _set(self, name: str, value: str) -> None:
        ...

    @abstractmethod
    def _unset(self, name: str) -> None:
        ...

    def keys(self) -> list[str]:
        return list(iter(self))

    def __contains__(self, name: object) -> bool:
        return name in self.keys()

    def __len__(self) -> int:
        return len(self.keys())

    def replace(self, name: str, value: str) -> bool:
        """Set ``name`` to ``value``. Returns True if anything changed."""
        if self.get(name) == value and name in self:
            return False
        self._set(name, value)
        self.revision += 1
        return True

    def delete(self, name: str) -> bool:
        """Remove ``name``. Returns True if it was present."""
        if name not in self:
            return False
        self._unset(name)
        self.revision += 1
        return True

    def clear(self) -> None:
        for name in self.keys():
            self.delete(name)


class EnvironmentOverlay(EnvironmentCollection):
    """In-memory overlay, merged over a base environment for child processes.

    Example::

        env = overlay.environ()
        await asyncio.create_subprocess_exec("make", "deploy", env=env)
    """

    def __init__(self, values: Optional[Mapping[str, str]] = None) -> None:
        super().__init__()
        self._values: dict[str, str] = dict(values or {})

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._values))

    def __contains__(self, name: object) -> bool:
        return name in self._values

    def get(self, name: str) -> Optional[str]:
        return self._values.get(name)

    def _set(self, name: str, value: str) -> None:
        self._values[name] = value

    def _unset(self, name: str) -> None:
        del self._values[name]

    def as_dict(self) -> dict[str, str]:
        return dict(self._values)

    def environ(self, base: Optional[Mapping[str, str]] = None) -> dict[str, str]:
        """Return ``base`` (default: ``os.environ``) with the overlay applied."""
        env = dict(os.environ if base is None else base)
        env.update(self._values)
        return env

    def __repr__(self) -> str:
        return f"<EnvironmentOverlay names={sorted(self._values)}>"


class ProcessEnvironment(EnvironmentCollection):
    """Projects secrets into a live environment mapping (``os.environ``).

    Only the names set through this collection are enumerated or removed;
    the rest of the environment is left alone. A variable shadowed by a
    secret gets its original value back when the secret is removed.
    """

    def __init__(self, environ: Optional[MutableMapping[str, str]] = None) -> None:
        super().__init__()
        self._environ = os.environ if environ is None else environ
        self._owned: dict[str, Optional[str]] = {}

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._owned))

    def __contains__(self, name: object) -> bool:
        return name in self._owned

    def get(self, name: str) -> Optional[str]:
        if name not in self._owned:
            return None
        return self._environ.get(name)

    def _set(self, name: str, value: str) -> None:
        if name not in self._owned:
            self._owned[name] = self._environ.get(name)
            if self._owned[name] is not None:
                logger.debug("Secret %s shadows an existing environment variable", name)
        self._environ[name] = value

    def _unset(self, name: str) -> None:
        original = self._owned.pop(name)
        if original is None:
            self._environ.pop(name, None)
        else:
            self._environ[name] = original
