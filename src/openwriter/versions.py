"""Snapshot history for documents, keyed by ``docId``.

Layout: ``<versions-root>/<docId>/<epoch-millis>.md``, each file holding the
full markdown (frontmatter included) of the document at that instant.

Snapshotting is best-effort: storage failures are logged and swallowed so a
save or restore never fails because history could not be written.
"""

from __future__ import annotations

import hashlib
import logging
import random
import time
from collections.abc import Callable, MutableMapping
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any, TypedDict

from .config import (
    KEEP_ALL_WITHIN_MS,
    MAX_VERSIONS,
    MIN_SNAPSHOT_INTERVAL_MS,
    get_versions_dir,
)
from .markdown_parse import ParsedMarkdown, markdown_to_tiptap
from .nodes import count_words
from .utils import (
    fs_basename,
    fs_exists,
    fs_join,
    fs_ls,
    fs_makedirs,
    fs_read_text,
    fs_write_text,
    get_fs_and_path,
    validate_id,
)

if TYPE_CHECKING:
    import fsspec

logger = logging.getLogger(__name__)

SNAPSHOT_SUFFIX = ".md"
HASH_LENGTH = 16


class VersionInfo(TypedDict):
    """Summary of one stored snapshot."""

    timestamp: int
    date: str
    size: int
    wordCount: int  # noqa: N815


def content_hash(content: str) -> str:
    """Return the truncated SHA-256 hex digest used for deduplication."""
    return hashlib.sha256(content.encode("utf-8")).hexdigest()[:HASH_LENGTH]


def _now_ms() -> int:
    return int(time.time() * 1000)


def generate_doc_id() -> str:
    """Return a short identifier derived from the clock and a random value.

    Not content-derived and not collision-proof; eight hex characters are
    enough for a single user's document set.
    """
    seed = f"{time.time_ns()}{random.random()}"  # noqa: S311
    return hashlib.sha256(seed.encode("utf-8")).hexdigest()[:8]


def _parse_timestamp(filename: str) -> int | None:
    if not filename.endswith(SNAPSHOT_SUFFIX):
        return None
    stem = filename[: -len(SNAPSHOT_SUFFIX)]
    if not stem.isdigit():
        return None
    return int(stem)


class VersionStore:
    """Deduplicated, throttled, retention-bounded snapshot store.

    The last written ``(timestamp, hash)`` per ``docId`` is cached on the
    instance. The cache is seeded from the newest snapshot on disk the first
    time a ``docId`` is seen, so a restart does not produce a duplicate
    snapshot of unchanged content.

    One instance assumes it is the only writer for a given ``docId``.
    """

    def __init__(
        self,
        root: str | Path | None = None,
        *,
        fs: fsspec.AbstractFileSystem | None = None,
        clock: Callable[[], int] | None = None,
    ) -> None:
        """Create a store rooted at ``root``.

        Args:
            root: Versions directory; defaults to ``get_versions_dir()``.
            fs: Filesystem for both snapshots and live documents.
            clock: Returns the current time in epoch milliseconds.

        """
        self.fs, self.root = get_fs_and_path(root or get_versions_dir(), fs)
        self._clock = clock or _now_ms
        self._last: dict[str, tuple[int, str] | None] = {}

    # ---- identity ----

    @staticmethod
    def ensure_doc_id(metadata: MutableMapping[str, Any]) -> str:
        """Return ``metadata["docId"]``, assigning a new one when missing."""
        doc_id = metadata.get("docId")
        if isinstance(doc_id, str) and doc_id:
            return doc_id
        doc_id = generate_doc_id()
        metadata["docId"] = doc_id
        return doc_id

    # ---- internals ----

    @staticmethod
    def _is_readable_id(doc_id: str | None) -> bool:
        """Whether a lookup for ``doc_id`` can proceed; unsafe ids find nothing."""
        if not doc_id:
            return False
        try:
            validate_id(doc_id, "doc_id")
        except ValueError as exc:
            logger.warning("Ignoring version lookup: %s", exc)
            return False
        return True

    def _doc_dir(self, doc_id: str) -> str:
        return fs_join(self.root, validate_id(doc_id, "doc_id"))

    def _snapshot_path(self, doc_id: str, timestamp: int) -> str:
        return fs_join(self._doc_dir(doc_id), f"{timestamp}{SNAPSHOT_SUFFIX}")

    def _timestamps(self, doc_id: str) -> list[int]:
        """Stored snapshot timestamps, newest first."""
        doc_dir = self._doc_dir(doc_id)
        if not fs_exists(self.fs, doc_dir):
            return []
        stamps = []
        for entry in fs_ls(self.fs, doc_dir):
            timestamp = _parse_timestamp(fs_basename(entry))
            if timestamp is not None:
                stamps.append(timestamp)
        return sorted(stamps, reverse=True)

    def _seed(self, doc_id: str) -> tuple[int, str] | None:
        """Return the cached last snapshot, loading it from disk on first use."""
        if doc_id in self._last:
            return self._last[doc_id]

        seeded = None
        try:
            stamps = self._timestamps(doc_id)
            if stamps:
                newest = stamps[0]
                content = fs_read_text(self.fs, self._snapshot_path(doc_id, newest))
                seeded = (newest, content_hash(content))
        except (OSError, UnicodeDecodeError) as exc:
            logger.warning("Failed to seed snapshot cache for %s: %s", doc_id, exc)
        self._last[doc_id] = seeded
        return seeded

    def _write_snapshot(self, doc_id: str, content: str) -> int:
        fs_makedirs(self.fs, self._doc_dir(doc_id))
        timestamp = self._clock()
        # Two writes in the same millisecond must not share a filename.
        while fs_exists(self.fs, self._snapshot_path(doc_id, timestamp)):
            timestamp += 1
        fs_write_text(self.fs, self._snapshot_path(doc_id, timestamp), content)
        self._last[doc_id] = (timestamp, content_hash(content))
        logger.debug("Wrote snapshot %s/%s", doc_id, timestamp)
        return timestamp

    def _read_live(self, path: str | Path) -> str | None:
        live = str(path)
        if not fs_exists(self.fs, live):
            return None
        return fs_read_text(self.fs, live)

    # ---- public API ----

    def snapshot_if_needed(self, doc_id: str | None, path: str | Path) -> int | None:
        """Snapshot the live file at ``path`` unless unchanged or throttled.

        Args:
            doc_id: Document identifier; falsy values are a no-op.
            path: Live markdown file to copy.

        Returns:
            Timestamp of the new snapshot, or None when nothing was written.

        Raises:
            ValueError: If ``doc_id`` is not a safe path component.

        """
        if not doc_id:
            return None
        validate_id(doc_id, "doc_id")

        try:
            content = self._read_live(path)
            if content is None:
                return None

            last = self._seed(doc_id)
            if last is not None:
                last_timestamp, last_hash = last
                if content_hash(content) == last_hash:
                    return None
                if self._clock() - last_timestamp < MIN_SNAPSHOT_INTERVAL_MS:
                    return None

            timestamp = self._write_snapshot(doc_id, content)
        except (OSError, UnicodeDecodeError) as exc:
            logger.warning("Snapshot failed for %s: %s", doc_id, exc)
            return None

        self.prune_versions(doc_id)
        return timestamp

    def force_snapshot(self, doc_id: str | None, path: str | Path) -> int | None:
        """Snapshot ``path`` unconditionally, skipping dedup and throttle.

        Used right before a destructive restore so the current state can
        always be recovered.
        """
        if not doc_id:
            return None
        validate_id(doc_id, "doc_id")

        try:
            content = self._read_live(path)
            if content is None:
                return None
            timestamp = self._write_snapshot(doc_id, content)
        except (OSError, UnicodeDecodeError) as exc:
            logger.warning("Forced snapshot failed for %s: %s", doc_id, exc)
            return None

        self.prune_versions(doc_id)
        return timestamp

    def list_versions(self, doc_id: str | None) -> list[VersionInfo]:
        """List snapshots for ``doc_id``, newest first."""
        if not self._is_readable_id(doc_id):
            return []

        try:
            stamps = self._timestamps(doc_id)
        except OSError as exc:
            logger.warning("Failed to list versions for %s: %s", doc_id, exc)
            return []

        versions: list[VersionInfo] = []
        for timestamp in stamps:
            try:
                content = fs_read_text(self.fs, self._snapshot_path(doc_id, timestamp))
            except (OSError, UnicodeDecodeError):
                continue
            versions.append(
                {
                    "timestamp": timestamp,
                    "date": datetime.fromtimestamp(timestamp / 1000, tz=UTC)
                    .isoformat(timespec="milliseconds")
                    .replace("+00:00", "Z"),
                    "size": len(content.encode("utf-8")),
                    "wordCount": count_words(content),
                },
            )
        return versions

    def get_version_content(self, doc_id: str | None, timestamp: int) -> str | None:
        """Return the raw markdown of one snapshot, or None if absent."""
        if not self._is_readable_id(doc_id):
            return None
        path = self._snapshot_path(doc_id, int(timestamp))
        try:
            if not fs_exists(self.fs, path):
                return None
            return fs_read_text(self.fs, path)
        except (OSError, UnicodeDecodeError) as exc:
            logger.warning("Failed to read version %s/%s: %s", doc_id, timestamp, exc)
            return None

    def restore_version(self, doc_id: str | None, timestamp: int) -> ParsedMarkdown | None:
        """Parse one snapshot into a ready-to-apply document."""
        content = self.get_version_content(doc_id, timestamp)
        if content is None:
            return None
        return markdown_to_tiptap(content)

    def prune_versions(self, doc_id: str | None) -> list[int]:
        """Apply the retention policy and return the deleted timestamps.

        Kept: the ``MAX_VERSIONS`` newest snapshots plus every snapshot newer
        than ``KEEP_ALL_WITHIN_MS``. Deletion failures are ignored.
        """
        if not doc_id:
            return []

        try:
            stamps = self._timestamps(doc_id)
        except OSError as exc:
            logger.warning("Failed to prune versions for %s: %s", doc_id, exc)
            return []
        if len(stamps) <= MAX_VERSIONS:
            return []

        cutoff = self._clock() - KEEP_ALL_WITHIN_MS
        deleted = []
        for timestamp in stamps[MAX_VERSIONS:]:
            if timestamp >= cutoff:
                continue
            try:
                self.fs.rm(self._snapshot_path(doc_id, timestamp))
            except OSError as exc:
                logger.warning("Failed to delete version %s/%s: %s", doc_id, timestamp, exc)
                continue
            deleted.append(timestamp)
        return deleted
