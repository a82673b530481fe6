"""Helpers shared by the parser, serializer and pending-state code.

Documents are plain JSON-compatible dicts in the editor's block format::

    {"type": "doc", "content": [
        {"type": "paragraph", "attrs": {"id": "1a2b3c4d"}, "content": [
            {"type": "text", "text": "Hello", "marks": [{"type": "bold"}]},
        ]},
    ]}
"""

from collections.abc import Iterable, Iterator
from typing import Any

from .config import LEAF_BLOCK_TYPES

Node = dict[str, Any]


def node_text(node: Node) -> str:
    """Return the concatenated text of a node's direct inline children."""
    return "".join(child.get("text") or "" for child in node.get("content") or [])


def plain_text(nodes: Iterable[Node]) -> str:
    """Flatten a node list to plain text, one line per block."""
    parts = []
    for node in nodes:
        if node.get("text"):
            parts.append(node["text"])
        elif node.get("content"):
            parts.append(plain_text(node["content"]))
        else:
            parts.append("")
    return "\n".join(parts)


def count_words(text: str) -> int:
    """Count whitespace-separated words after trimming."""
    stripped = text.strip()
    return len(stripped.split()) if stripped else 0


def iter_nodes(nodes: Iterable[Node]) -> Iterator[Node]:
    """Yield every node in document order (pre-order)."""
    for node in nodes:
        yield node
        if node.get("content"):
            yield from iter_nodes(node["content"])


def collect_leaf_blocks(nodes: Iterable[Node]) -> list[Node]:
    """Return leaf blocks in document order.

    Container blocks (lists, list items, blockquotes) are descended into;
    leaf blocks are not, so table cells never count as separate leaves.
    """
    leaves: list[Node] = []
    for node in nodes:
        if node.get("type") in LEAF_BLOCK_TYPES:
            leaves.append(node)
        elif node.get("content"):
            leaves.extend(collect_leaf_blocks(node["content"]))
    return leaves
