"""Document files: load, save, restore and listing.

Documents are ``.md`` files in the data directory. Every persisted write is
followed by a best-effort version snapshot.
"""

import logging
import uuid
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Literal, TypedDict

from .config import DEFAULT_TITLE, TEMP_PREFIX, get_data_dir
from .markdown_parse import (
    ParsedMarkdown,
    markdown_to_nodes,
    markdown_to_tiptap,
    split_frontmatter,
)
from .markdown_serialize import tiptap_to_markdown
from .nodes import Node, count_words, plain_text
from .pending import has_pending_changes, mark_all_nodes_as_pending
from .utils import sanitize_filename
from .versions import VersionStore

logger = logging.getLogger(__name__)

# A save may not shrink a file larger than this many bytes...
DESTRUCTIVE_SAVE_MIN_BYTES = 200
# ...to less than this fraction of its size, unless changes are pending.
DESTRUCTIVE_SAVE_RATIO = 0.1

RestoreMode = Literal["full", "review"]


class DocumentInfo(TypedDict):
    """Listing entry for one document file."""

    filename: str
    title: str
    path: str
    lastModified: str  # noqa: N815
    wordCount: int  # noqa: N815


def document_path_for_title(title: str, data_dir: str | Path | None = None) -> Path:
    """Return the file path a new document with ``title`` is saved to.

    Untitled documents get a unique temporary name.
    """
    directory = Path(data_dir) if data_dir else get_data_dir()
    if not title or title == DEFAULT_TITLE:
        return directory / f"{TEMP_PREFIX}{uuid.uuid4()}.md"
    return directory / f"{sanitize_filename(title)}.md"


def load_document(path: str | Path) -> ParsedMarkdown:
    """Parse a document file, assigning a ``docId`` if it has none.

    Raises:
        FileNotFoundError: If ``path`` does not exist.

    """
    parsed = markdown_to_tiptap(Path(path).read_text(encoding="utf-8"))
    VersionStore.ensure_doc_id(parsed["metadata"])
    return parsed


def save_document(
    path: str | Path,
    document: Node,
    title: str,
    metadata: dict[str, Any] | None = None,
    store: VersionStore | None = None,
) -> bool:
    """Serialize and write a document, then snapshot it.

    Writes are skipped when the file already holds identical markdown, and
    refused when they would replace a substantial file with near-empty
    content while no changes are pending.

    Args:
        path: Target markdown file.
        document: Root ``doc`` node.
        title: Document title.
        metadata: Frontmatter fields, normally including ``docId``.
        store: Version store to snapshot into; skipped when None.

    Returns:
        True if the file was written.

    """
    markdown = tiptap_to_markdown(document, title, metadata)
    target = Path(path)

    if target.exists():
        try:
            if target.read_text(encoding="utf-8") == markdown:
                return False
        except (OSError, UnicodeDecodeError) as exc:
            logger.debug("Could not compare with %s: %s", target, exc)

        if not has_pending_changes(document):
            existing_size = target.stat().st_size
            new_size = len(markdown.encode("utf-8"))
            if (
                existing_size > DESTRUCTIVE_SAVE_MIN_BYTES
                and new_size < existing_size * DESTRUCTIVE_SAVE_RATIO
            ):
                logger.error(
                    "Blocked destructive save: %d bytes would replace %d bytes in %s",
                    new_size,
                    existing_size,
                    target,
                )
                return False

    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(markdown, encoding="utf-8")

    if store is not None:
        store.snapshot_if_needed((metadata or {}).get("docId"), target)
    return True


def restore_document(
    path: str | Path,
    store: VersionStore,
    timestamp: int,
    mode: RestoreMode = "full",
) -> ParsedMarkdown | None:
    """Replace a document's content with a stored version.

    The live file is force-snapshotted first. In ``review`` mode every leaf
    block of the restored content is marked as a pending rewrite instead of
    being accepted outright. Title and metadata of the live document are kept.

    Returns:
        The restored document, or None if the version does not exist.

    Raises:
        ValueError: If ``mode`` is not ``full`` or ``review``.

    """
    if mode not in ("full", "review"):
        msg = f"Invalid restore mode: {mode}"
        raise ValueError(msg)

    current = load_document(path)
    doc_id = current["metadata"]["docId"]
    store.force_snapshot(doc_id, path)

    restored = store.restore_version(doc_id, timestamp)
    if restored is None:
        return None

    document = restored["document"]
    if mode == "review":
        mark_all_nodes_as_pending(document, "rewrite")

    save_document(path, document, current["title"], current["metadata"], store)
    return {
        "title": current["title"],
        "metadata": current["metadata"],
        "document": document,
    }


def list_documents(data_dir: str | Path | None = None) -> list[DocumentInfo]:
    """List documents newest first, skipping empty temporary files."""
    directory = Path(data_dir) if data_dir else get_data_dir()
    if not directory.is_dir():
        return []

    documents: list[DocumentInfo] = []
    for path in directory.glob("*.md"):
        try:
            raw = path.read_text(encoding="utf-8")
            modified = path.stat().st_mtime
        except (OSError, UnicodeDecodeError) as exc:
            logger.warning("Skipping unreadable document %s: %s", path.name, exc)
            continue

        metadata, body = split_frontmatter(raw)
        body = body.strip()
        if path.name.startswith(TEMP_PREFIX) and not body:
            continue

        title = metadata.get("title")
        documents.append(
            {
                "filename": path.name,
                "title": title if isinstance(title, str) and title else DEFAULT_TITLE,
                "path": str(path),
                "lastModified": datetime.fromtimestamp(modified, tz=UTC).isoformat(),
                "wordCount": count_words(plain_text(markdown_to_nodes(body))),
            },
        )

    documents.sort(key=lambda info: info["lastModified"], reverse=True)
    return documents
