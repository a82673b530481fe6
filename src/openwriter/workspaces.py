"""Workspace manifest management.

Each workspace is a JSON manifest in the workspaces directory::

    {"version": 2, "title": "Novel", "voiceProfileId": null,
     "root": [...workspace tree...], "context": {...}}

Display order lives in ``_order.json``. Manifests written by older releases
(no ``version`` or ``version < 2``; a flat ``items`` list of ``{file, tag}``)
are migrated on first read and written back.
"""

import json
import logging
import re
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Annotated, Any, Literal, TypedDict

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    TypeAdapter,
    ValidationError,
    field_validator,
)

try:  # pragma: no cover - platform specific
    import fcntl

    # declaring a local annotation to make the type checker happy
    fcntl: Any
except ImportError:  # pragma: no cover - platform specific
    # fcntl is not available on Windows/python distributions such as pypy
    fcntl: Any | None = None

from .config import DEFAULT_TITLE, get_data_dir, get_workspaces_dir
from .markdown_parse import split_frontmatter
from .utils import validate_id, write_json_secure
from .workspace_tree import (
    NodeNotFoundError,
    WorkspaceNode,
    add_container,
    add_doc_to_container,
    collect_all_files,
    count_docs,
    find_container,
    find_doc_node,
    move_node,
    remove_node,
    reorder_node,
)
from .workspace_tree import rename_container as rename_container_in_tree

logger = logging.getLogger(__name__)

ORDER_FILENAME = "_order.json"
MANIFEST_SUFFIX = ".json"
CURRENT_VERSION = 2


class WorkspaceNotFoundError(FileNotFoundError):
    """Raised when a workspace manifest does not exist."""


class DocRef(BaseModel):
    """A document reference; its children are containers."""

    model_config = ConfigDict(extra="allow")

    type: Literal["doc"]
    file: str
    title: str | None = None
    children: list["TreeNode"] = Field(default_factory=list)


class Container(BaseModel):
    """A named folder of docs and nested containers."""

    model_config = ConfigDict(extra="allow")

    type: Literal["container"]
    id: str
    name: str
    items: list["TreeNode"] = Field(default_factory=list)


TreeNode = Annotated[DocRef | Container, Field(discriminator="type")]
DocRef.model_rebuild()
Container.model_rebuild()
_TREE_ADAPTER = TypeAdapter(list[TreeNode])


class WorkspaceManifest(BaseModel):
    """Persisted workspace manifest (version 2)."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    version: Literal[2] = CURRENT_VERSION
    title: str
    voice_profile_id: str | None = Field(default=None, alias="voiceProfileId")
    root: list[WorkspaceNode] = Field(default_factory=list)
    context: dict[str, Any] | None = None

    @field_validator("root")
    @classmethod
    def _check_tree(cls, root: list[WorkspaceNode]) -> list[WorkspaceNode]:
        # Shapes are checked here; the tree itself stays as plain dicts.
        try:
            _TREE_ADAPTER.validate_python(root)
        except ValidationError as exc:
            msg = f"Invalid workspace tree: {exc}"
            raise ValueError(msg) from exc
        return root

    def to_json(self) -> dict[str, Any]:
        """Return the on-disk JSON shape."""
        payload = self.model_dump(by_alias=True)
        if payload.get("context") is None:
            payload.pop("context", None)
        return payload


class WorkspaceInfo(TypedDict):
    """Summary row returned by ``list_workspaces``."""

    filename: str
    title: str
    docCount: int  # noqa: N815


def is_legacy(data: dict[str, Any]) -> bool:
    """Return True for manifests predating the container tree."""
    version = data.get("version")
    return not version or version < CURRENT_VERSION


def migrate_legacy(data: dict[str, Any]) -> WorkspaceManifest:
    """Convert a flat ``items`` manifest to one root-level doc per item.

    Tag associations are not carried over; tags are indexed elsewhere.
    """
    root: list[WorkspaceNode] = []
    for item in data.get("items") or []:
        file = item.get("file")
        if not file:
            continue
        title = file[: -len(".md")] if file.endswith(".md") else file
        root.append({"type": "doc", "file": file, "title": title})

    return WorkspaceManifest(
        title=data.get("title") or DEFAULT_TITLE,
        voiceProfileId=data.get("voiceProfileId"),
        root=root,
        context=data.get("context"),
    )


def _workspaces_dir(workspaces_dir: str | Path | None) -> Path:
    path = Path(workspaces_dir) if workspaces_dir else get_workspaces_dir()
    path.mkdir(parents=True, exist_ok=True)
    return path


def _manifest_path(workspaces_dir: Path, filename: str) -> Path:
    if not filename.endswith(MANIFEST_SUFFIX):
        msg = f"Invalid workspace filename: {filename}"
        raise ValueError(msg)
    validate_id(filename[: -len(MANIFEST_SUFFIX)], "workspace filename")
    return workspaces_dir / filename


def _load_manifest(data: dict[str, Any], filename: str) -> tuple[WorkspaceManifest, bool]:
    """Validate raw JSON, migrating legacy manifests.

    Returns:
        The manifest and whether it was migrated.

    """
    if not isinstance(data, dict):
        msg = f"Workspace manifest {filename} is not a JSON object"
        raise ValueError(msg)  # noqa: TRY004
    version = data.get("version")
    if version is not None and (not isinstance(version, int) or isinstance(version, bool)):
        msg = f"Workspace manifest {filename} has invalid version {version!r}"
        raise ValueError(msg)
    if is_legacy(data):
        logger.info("Migrating legacy workspace manifest %s", filename)
        return migrate_legacy(data), True
    return WorkspaceManifest.model_validate(data), False


@contextmanager
def _locked_manifest(
    workspaces_dir: str | Path | None,
    filename: str,
) -> Iterator[WorkspaceManifest]:
    """Yield a manifest for read-modify-write under an advisory lock.

    The manifest is written back only if the block exits without raising.
    """
    path = _manifest_path(_workspaces_dir(workspaces_dir), filename)
    if not path.exists():
        msg = f"Workspace not found: {filename}"
        raise WorkspaceNotFoundError(msg)

    with path.open("r+", encoding="utf-8") as handle:
        if fcntl:
            fcntl.flock(handle, fcntl.LOCK_EX)

        try:
            manifest, _migrated = _load_manifest(json.load(handle), filename)
            yield manifest

            handle.seek(0)
            json.dump(manifest.to_json(), handle, indent=2, ensure_ascii=False)
            handle.truncate()
        finally:
            if fcntl:
                fcntl.flock(handle, fcntl.LOCK_UN)


def _read_order(workspaces_dir: Path) -> list[str]:
    path = workspaces_dir / ORDER_FILENAME
    if not path.exists():
        return []
    try:
        order = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        logger.warning("Ignoring unreadable workspace order file: %s", exc)
        return []
    return [name for name in order if isinstance(name, str)] if isinstance(order, list) else []


def _write_order(workspaces_dir: Path, order: list[str]) -> None:
    write_json_secure(workspaces_dir / ORDER_FILENAME, order)


# ---- CRUD ----


def list_workspaces(workspaces_dir: str | Path | None = None) -> list[WorkspaceInfo]:
    """List workspaces in persisted order; unordered ones follow, corrupt ones are skipped."""
    directory = _workspaces_dir(workspaces_dir)
    infos: list[WorkspaceInfo] = []
    for path in sorted(directory.glob(f"*{MANIFEST_SUFFIX}")):
        if path.name == ORDER_FILENAME:
            continue
        try:
            manifest = get_workspace(directory, path.name)
        except (OSError, ValueError) as exc:
            logger.warning("Skipping unreadable workspace %s: %s", path.name, exc)
            continue
        infos.append(
            {
                "filename": path.name,
                "title": manifest.title,
                "docCount": count_docs(manifest.root),
            },
        )

    order = _read_order(directory)
    if order:
        position = {name: index for index, name in enumerate(order)}
        infos.sort(key=lambda info: position.get(info["filename"], len(order)))
    return infos


def get_workspace(workspaces_dir: str | Path | None, filename: str) -> WorkspaceManifest:
    """Load a manifest, writing it back first if it needed migration.

    Raises:
        WorkspaceNotFoundError: If the manifest does not exist.
        pydantic.ValidationError: If a current-format manifest is malformed.
        ValueError: If the manifest is not an object or its version is not an int.

    """
    path = _manifest_path(_workspaces_dir(workspaces_dir), filename)
    if not path.exists():
        msg = f"Workspace not found: {filename}"
        raise WorkspaceNotFoundError(msg)

    data = json.loads(path.read_text(encoding="utf-8"))
    manifest, migrated = _load_manifest(data, filename)
    if migrated:
        # Re-read under the lock so a concurrent writer is not overwritten.
        with _locked_manifest(workspaces_dir, filename) as locked:
            manifest = locked
    return manifest


def create_workspace(
    workspaces_dir: str | Path | None,
    title: str,
    voice_profile_id: str | None = None,
) -> WorkspaceInfo:
    """Create an empty manifest named ``<slug>-<8 hex>.json`` and append it to the order."""
    directory = _workspaces_dir(workspaces_dir)
    slug = re.sub(r"[^a-z0-9_-]+", "-", title.lower()).strip("-") or "workspace"
    filename = f"{slug}-{uuid.uuid4().hex[:8]}{MANIFEST_SUFFIX}"

    manifest = WorkspaceManifest(title=title, voiceProfileId=voice_profile_id)
    write_json_secure(directory / filename, manifest.to_json(), exclusive=True)

    order = _read_order(directory)
    order.append(filename)
    _write_order(directory, order)

    logger.info("Created workspace %s", filename)
    return {"filename": filename, "title": title, "docCount": 0}


def delete_workspace(workspaces_dir: str | Path | None, filename: str) -> None:
    """Delete a manifest and drop it from the order file."""
    directory = _workspaces_dir(workspaces_dir)
    path = _manifest_path(directory, filename)
    if not path.exists():
        msg = f"Workspace not found: {filename}"
        raise WorkspaceNotFoundError(msg)
    path.unlink()

    order = _read_order(directory)
    if filename in order:
        order.remove(filename)
        _write_order(directory, order)
    logger.info("Deleted workspace %s", filename)


def reorder_workspaces(workspaces_dir: str | Path | None, filenames: list[str]) -> None:
    """Persist the display order of workspaces."""
    _write_order(_workspaces_dir(workspaces_dir), list(filenames))


# ---- Docs ----


def add_doc(
    workspaces_dir: str | Path | None,
    ws_file: str,
    container_id: str | None,
    file: str,
    title: str,
    after_file: str | None = None,
) -> WorkspaceManifest:
    """Add a document reference to a workspace."""
    with _locked_manifest(workspaces_dir, ws_file) as manifest:
        add_doc_to_container(manifest.root, container_id, file, title, after_file)
    return manifest


def remove_doc(workspaces_dir: str | Path | None, ws_file: str, file: str) -> WorkspaceManifest:
    """Remove a document reference (and any containers hanging off it)."""
    with _locked_manifest(workspaces_dir, ws_file) as manifest:
        if find_doc_node(manifest.root, file) is None:
            msg = f'Document "{file}" not found in workspace'
            raise NodeNotFoundError(msg)
        remove_node(manifest.root, file)
    return manifest


def move_doc(
    workspaces_dir: str | Path | None,
    ws_file: str,
    file: str,
    target_container_id: str | None,
    after_file: str | None = None,
) -> WorkspaceManifest:
    """Move a document reference to another container or the root level."""
    with _locked_manifest(workspaces_dir, ws_file) as manifest:
        move_node(manifest.root, file, target_container_id, after_file)
    return manifest


def reorder_doc(
    workspaces_dir: str | Path | None,
    ws_file: str,
    file: str,
    after_file: str | None = None,
) -> WorkspaceManifest:
    """Reorder a document reference within its container."""
    with _locked_manifest(workspaces_dir, ws_file) as manifest:
        reorder_node(manifest.root, file, after_file)
    return manifest


# ---- Containers ----


def add_container_to_workspace(
    workspaces_dir: str | Path | None,
    ws_file: str,
    parent_id: str | None,
    name: str,
) -> tuple[WorkspaceManifest, str]:
    """Add a container and return the manifest with the new container id."""
    with _locked_manifest(workspaces_dir, ws_file) as manifest:
        container = add_container(manifest.root, parent_id, name)
    return manifest, container["id"]


def remove_container(
    workspaces_dir: str | Path | None,
    ws_file: str,
    container_id: str,
) -> WorkspaceManifest:
    """Remove a container with everything inside it."""
    with _locked_manifest(workspaces_dir, ws_file) as manifest:
        if find_container(manifest.root, container_id) is None:
            msg = f'Container "{container_id}" not found'
            raise NodeNotFoundError(msg)
        remove_node(manifest.root, container_id)
    return manifest


def rename_container(
    workspaces_dir: str | Path | None,
    ws_file: str,
    container_id: str,
    name: str,
) -> WorkspaceManifest:
    with _locked_manifest(workspaces_dir, ws_file) as manifest:
        rename_container_in_tree(manifest.root, container_id, name)
    return manifest


def reorder_container(
    workspaces_dir: str | Path | None,
    ws_file: str,
    container_id: str,
    after_id: str | None = None,
) -> WorkspaceManifest:
    with _locked_manifest(workspaces_dir, ws_file) as manifest:
        reorder_node(manifest.root, container_id, after_id)
    return manifest


# ---- Context ----


def update_workspace_context(
    workspaces_dir: str | Path | None,
    ws_file: str,
    context: dict[str, Any],
) -> WorkspaceManifest:
    """Shallow-merge ``context`` into the workspace context."""
    with _locked_manifest(workspaces_dir, ws_file) as manifest:
        manifest.context = {**(manifest.context or {}), **context}
    return manifest


def get_item_context(
    workspaces_dir: str | Path | None,
    ws_file: str,
    doc_file: str,
) -> dict[str, Any]:
    """Return the workspace title and context for a document in it."""
    manifest = get_workspace(workspaces_dir, ws_file)
    if find_doc_node(manifest.root, doc_file) is None:
        msg = f'Document "{doc_file}" not found in workspace'
        raise NodeNotFoundError(msg)
    return {
        "workspaceTitle": manifest.title,
        "workspaceContext": manifest.context or {},
    }


# ---- Cross-workspace queries ----


def get_workspace_assigned_files(workspaces_dir: str | Path | None = None) -> set[str]:
    """Return every document file referenced by any workspace."""
    assigned: set[str] = set()
    for info in list_workspaces(workspaces_dir):
        try:
            manifest = get_workspace(workspaces_dir, info["filename"])
        except (OSError, ValueError):
            continue
        assigned.update(collect_all_files(manifest.root))
    return assigned


def get_doc_title(filename: str, data_dir: str | Path | None = None) -> str:
    """Read a document's frontmatter title, falling back to the file stem."""
    fallback = filename[: -len(".md")] if filename.endswith(".md") else filename
    path = Path(data_dir) if data_dir else get_data_dir()
    doc_path = path / filename
    if not doc_path.is_file():
        return fallback
    try:
        metadata, _body = split_frontmatter(doc_path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError):
        return fallback
    title = metadata.get("title")
    if isinstance(title, str) and title and title != DEFAULT_TITLE:
        return title
    return fallback
