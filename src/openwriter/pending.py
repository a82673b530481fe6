"""Pending-change annotations on leaf blocks.

An agent proposes edits by tagging leaf blocks with ``pendingStatus`` (and,
for rewrites, ``pendingOriginalContent``). The markdown body cannot carry
node attributes, so the serializer records them in the frontmatter ``pending``
map keyed by leaf position::

    {"3": {"s": "rewrite", "o": "old text", "t": "new text"}}

``t`` is a text fingerprint of the leaf at save time. Positions can shift
between save and load (an empty paragraph may vanish), so rehydration falls
back to matching the fingerprint against unclaimed leaves.
"""

import logging
from collections.abc import Mapping
from typing import Any

from .nodes import Node, collect_leaf_blocks, iter_nodes, node_text
from .utils import generate_node_id

logger = logging.getLogger(__name__)

PENDING_ATTRS = ("pendingStatus", "pendingOriginalContent", "pendingTextEdits")


def collect_pending_state(doc: Node) -> dict[str, dict[str, Any]] | None:
    """Build the frontmatter ``pending`` map from node attributes.

    Returns:
        Position-keyed map, or None when no leaf carries a pending status.

    """
    pending: dict[str, dict[str, Any]] = {}
    for index, leaf in enumerate(collect_leaf_blocks(doc.get("content") or [])):
        attrs = leaf.get("attrs") or {}
        status = attrs.get("pendingStatus")
        if not status:
            continue
        entry: dict[str, Any] = {"s": status}
        if attrs.get("pendingOriginalContent"):
            entry["o"] = attrs["pendingOriginalContent"]
        text = node_text(leaf)
        if text:
            entry["t"] = text
        pending[str(index)] = entry
    return pending or None


def _position_order(key: Any) -> tuple[int, int]:  # noqa: ANN401
    try:
        return (0, int(key))
    except (TypeError, ValueError):
        return (1, 0)


def rehydrate_pending_state(doc: Node, pending: Any) -> int:  # noqa: ANN401
    """Attach frontmatter pending entries to freshly parsed leaf blocks.

    Each entry claims at most one leaf and each leaf is claimed at most once:
    first the recorded position (verified against the fingerprint when one
    exists), then the first unclaimed leaf whose text equals the fingerprint.
    Entries matching nothing are dropped.

    Leaves with identical text are told apart only by position, so when the
    position check fails the fingerprint scan may pick the wrong twin.

    Returns:
        Number of entries attached.

    """
    if not isinstance(pending, Mapping):
        return 0

    leaves = collect_leaf_blocks(doc.get("content") or [])
    texts = [node_text(leaf) for leaf in leaves]
    used: set[int] = set()
    attached = 0

    for key in sorted(pending, key=_position_order):
        entry = pending[key]
        if not isinstance(entry, Mapping):
            continue
        fingerprint = entry.get("t")
        target: int | None = None

        try:
            position = int(key)
        except (TypeError, ValueError):
            position = -1

        if 0 <= position < len(leaves) and position not in used:
            if not fingerprint or texts[position] == fingerprint:
                target = position

        if target is None and fingerprint:
            for index, text in enumerate(texts):
                if index not in used and text == fingerprint:
                    target = index
                    break

        if target is None:
            logger.debug("Dropping unmatched pending entry at position %s", key)
            continue

        used.add(target)
        attrs = leaves[target].setdefault("attrs", {})
        attrs["pendingStatus"] = entry.get("s")
        if entry.get("o"):
            attrs["pendingOriginalContent"] = entry["o"]
        attached += 1

    return attached


def has_pending_changes(doc: Node) -> bool:
    """Return True if any node carries a pending status."""
    return any(
        (node.get("attrs") or {}).get("pendingStatus")
        for node in iter_nodes(doc.get("content") or [])
    )


def count_pending_changes(doc: Node) -> int:
    """Count nodes carrying a pending status."""
    return sum(
        1
        for node in iter_nodes(doc.get("content") or [])
        if (node.get("attrs") or {}).get("pendingStatus")
    )


def strip_pending_attrs(doc: Node) -> None:
    """Remove every pending attribute once all changes are resolved."""
    for node in iter_nodes(doc.get("content") or []):
        attrs = node.get("attrs")
        if attrs and attrs.get("pendingStatus"):
            for name in PENDING_ATTRS:
                attrs.pop(name, None)


def mark_all_nodes_as_pending(doc: Node, status: str) -> None:
    """Tag every leaf block with ``status``; container blocks stay untouched."""
    for leaf in collect_leaf_blocks(doc.get("content") or []):
        attrs = leaf.setdefault("attrs", {})
        attrs["pendingStatus"] = status
        if not attrs.get("id"):
            attrs["id"] = generate_node_id()
