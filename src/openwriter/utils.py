"""Utility functions for openwriter."""

import json
import os
import re
import uuid
from pathlib import Path
from typing import Any

import fsspec
from fsspec.core import url_to_fs

ID_PATTERN = re.compile(r"^[a-zA-Z0-9_-]+$")


def generate_node_id() -> str:
    """Return an 8-character hex identifier for a block node or container."""
    return uuid.uuid4().hex[:8]


def validate_id(identifier: str, name: str) -> str:
    """Validate that an identifier contains only safe characters.

    Identifiers end up as path components (version directories, manifest
    names), so anything outside ``[a-zA-Z0-9_-]`` is rejected.

    Args:
        identifier: The string to validate.
        name: The name of the field (for error messages).

    Returns:
        The validated identifier.

    Raises:
        ValueError: If the identifier contains invalid characters.

    """
    if not identifier or not ID_PATTERN.match(identifier):
        msg = (
            f"Invalid {name}: {identifier}. "
            "Must be alphanumeric, hyphens, or underscores."
        )
        raise ValueError(msg)
    return str(identifier)


def sanitize_filename(name: str) -> str:
    """Replace characters that are not allowed in file names."""
    return re.sub(r'[<>:"/\\|?*]', "-", name).strip() or "Untitled"


def get_fs_and_path(
    path: str | Path,
    fs: fsspec.AbstractFileSystem | None = None,
) -> tuple[fsspec.AbstractFileSystem, str]:
    """Resolve ``path`` to a filesystem object and a path inside it.

    Args:
        path: Local path or fsspec URL (``memory://...``, ``file://...``).
        fs: Explicit filesystem; when given, ``path`` is used as-is.

    Returns:
        Tuple of (filesystem, path string without protocol).

    """
    path_str = str(path)
    if fs is not None:
        return fs, path_str
    if "://" in path_str:
        return url_to_fs(path_str)
    return fsspec.filesystem("file"), path_str


def fs_join(base: str, *parts: str) -> str:
    """Join path components with ``/`` regardless of platform."""
    joined = base.rstrip("/")
    for part in parts:
        joined = f"{joined}/{part.strip('/')}"
    return joined


def fs_basename(path: str) -> str:
    """Return the last component of ``path``."""
    return path.rstrip("/").rsplit("/", 1)[-1]


def fs_exists(fs: fsspec.AbstractFileSystem, path: str) -> bool:
    """Return True if ``path`` exists on ``fs``."""
    return bool(fs.exists(path))


def fs_makedirs(
    fs: fsspec.AbstractFileSystem,
    path: str,
    *,
    exist_ok: bool = True,
) -> None:
    """Create ``path`` and any missing parents."""
    fs.makedirs(path, exist_ok=exist_ok)


def fs_ls(fs: fsspec.AbstractFileSystem, path: str) -> list[str]:
    """List entries directly under ``path`` as full paths."""
    return [str(entry) for entry in fs.ls(path, detail=False)]


def fs_read_text(fs: fsspec.AbstractFileSystem, path: str) -> str:
    """Read a UTF-8 text file."""
    with fs.open(path, "r", encoding="utf-8") as handle:
        return handle.read()


def fs_write_text(fs: fsspec.AbstractFileSystem, path: str, content: str) -> None:
    """Write a UTF-8 text file, replacing any previous content."""
    with fs.open(path, "w", encoding="utf-8") as handle:
        handle.write(content)


def write_json_secure(
    path: str | Path,
    payload: Any,  # noqa: ANN401
    mode: int = 0o600,
    *,
    exclusive: bool = False,
) -> None:
    """Write JSON to ``path`` while applying permissions atomically.

    Args:
        path: Target file path.
        payload: JSON-serializable value.
        mode: Permission bits applied at creation.
        exclusive: When True, use ``O_EXCL`` to avoid clobbering existing files.

    """
    flags = os.O_WRONLY | os.O_CREAT
    if exclusive:
        flags |= os.O_EXCL
    else:
        flags |= os.O_TRUNC

    fd = os.open(str(path), flags, mode)
    with os.fdopen(fd, "w", encoding="utf-8") as handle:
        json.dump(payload, handle, indent=2, ensure_ascii=False)
