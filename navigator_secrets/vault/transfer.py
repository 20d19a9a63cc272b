"""
Vault Transfer — File helpers for importing and exporting vault documents.

Exports write the stored payload verbatim; imports hand the file text to
``payload.parse_document()`` for validation. Both run the blocking file
I/O in a worker thread.

Security Note:
    Exported files contain plaintext secrets. They are written with
    owner-only permissions where the platform supports it.
"""
import os
import asyncio
import logging
from pathlib import Path
from typing import Optional, Sequence, Union

from ..exceptions import InvalidFormat

logger = logging.getLogger("navigator.secrets")

DEFAULT_EXPORT_FILENAME = "secrets.json"

PathLike = Union[str, os.PathLike]


def default_export_path(
    workspace_folders: Optional[Sequence[PathLike]],
    filename: str = DEFAULT_EXPORT_FILENAME,
) -> Optional[Path]:
    """Suggest ``<first workspace folder>/<filename>`` for an export.

    Returns:
        Suggested path, or None when no workspace folder is available.
    """
    if not workspace_folders:
        return None
    return Path(workspace_folders[0]) / filename


def _read(source: Path) -> str:
    try:
        return source.read_bytes().decode("utf-8")
    except UnicodeDecodeError as err:
        raise InvalidFormat(f"{source} is not UTF-8 text: {err}") from err


def _write(destination: Path, content: str) -> None:
    destination.parent.mkdir(parents=True, exist_ok=True)
    fd = os.open(destination, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, "wb") as f:
        f.write(content.encode("utf-8"))


async def read_document(source: PathLike) -> str:
    """Read the text of a document to import.

    Raises:
        InvalidFormat: If the file is not UTF-8 text.
        OSError: If the file cannot be read.
    """
    path = Path(source)
    content = await asyncio.to_thread(_read, path)
    logger.debug("Read vault document from %s (%d bytes)", path, len(content))
    return content


async def write_document(destination: PathLike, content: str) -> Path:
    """Write ``content`` to ``destination`` as UTF-8, replacing the file.

    Returns:
        The destination path.
    """
    path = Path(destination)
    await asyncio.to_thread(_write, path, content)
    logger.debug("Wrote vault document to %s", path)
    return path
