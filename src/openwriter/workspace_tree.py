"""Tree surgery on a workspace's ordered forest of docs and containers.

Nodes are the persisted JSON dicts::

    {"type": "doc", "file": "draft.md", "title": "Draft", "children": [...]}
    {"type": "container", "id": "1a2b3c4d", "name": "Part I", "items": [...]}

Every traversal descends into both ``Container.items`` and the containers
listed in ``DocRef.children``. Functions mutate ``root`` in place; callers
persist the result.
"""

from collections.abc import Callable, Iterator
from dataclasses import dataclass
from typing import Any

from .config import MAX_CONTAINER_DEPTH
from .utils import generate_node_id

WorkspaceNode = dict[str, Any]
Predicate = Callable[[WorkspaceNode], bool]


class WorkspaceTreeError(Exception):
    """Base class for workspace tree failures."""


class NodeNotFoundError(WorkspaceTreeError):
    """Raised when a doc, container or target collection does not exist."""


class DuplicateDocumentError(WorkspaceTreeError):
    """Raised when a file is already referenced somewhere in the tree."""


class MaxDepthExceededError(WorkspaceTreeError):
    """Raised when a container would sit deeper than the nesting limit."""


@dataclass
class FindResult:
    """A located node with the list that holds it."""

    node: WorkspaceNode
    parent: list[WorkspaceNode]
    index: int


def node_identifier(node: WorkspaceNode) -> str | None:
    """Return ``file`` for docs and ``id`` for containers."""
    if node.get("type") == "doc":
        return node.get("file")
    if node.get("type") == "container":
        return node.get("id")
    return None


def _walk(
    nodes: list[WorkspaceNode],
    depth: int = 0,
) -> Iterator[tuple[WorkspaceNode, list[WorkspaceNode], int, int]]:
    """Yield ``(node, parent, index, depth)`` depth-first in tree order."""
    for index, node in enumerate(nodes):
        yield node, nodes, index, depth
        if node.get("type") == "container":
            yield from _walk(node.get("items") or [], depth + 1)
        elif node.get("type") == "doc" and node.get("children"):
            yield from _walk(node["children"], depth + 1)


def find_node(root: list[WorkspaceNode], predicate: Predicate) -> FindResult | None:
    """Depth-first search for the first node matching ``predicate``."""
    for node, parent, index, _depth in _walk(root):
        if predicate(node):
            return FindResult(node=node, parent=parent, index=index)
    return None


def find_doc_node(root: list[WorkspaceNode], file: str) -> FindResult | None:
    """Locate the doc referencing ``file``."""
    return find_node(root, lambda n: n.get("type") == "doc" and n.get("file") == file)


def find_container(root: list[WorkspaceNode], container_id: str) -> FindResult | None:
    """Locate the container with ``container_id``."""
    return find_node(
        root,
        lambda n: n.get("type") == "container" and n.get("id") == container_id,
    )


def _find_by_identifier(root: list[WorkspaceNode], identifier: str) -> FindResult | None:
    return find_node(root, lambda n: node_identifier(n) == identifier)


def get_depth(root: list[WorkspaceNode], identifier: str) -> int:
    """Return the nesting depth of a node (root level is 0), or -1."""
    for node, _parent, _index, depth in _walk(root):
        if node_identifier(node) == identifier:
            return depth
    return -1


def _insertion_depth(root: list[WorkspaceNode], container_id: str | None) -> int:
    if container_id is None:
        return 0
    return get_depth(root, container_id) + 1


def _subtree_height(node: WorkspaceNode) -> int:
    """Levels of containers a node brings along, itself included."""
    if node.get("type") == "container":
        items = node.get("items") or []
        return 1 + max((_subtree_height(item) for item in items), default=0)
    children = node.get("children") or []
    if not children:
        return 0
    return 1 + max(_subtree_height(child) for child in children)


def _items_of(root: list[WorkspaceNode], container_id: str | None) -> list[WorkspaceNode] | None:
    if container_id is None:
        return root
    found = find_container(root, container_id)
    if found is None:
        return None
    return found.node.setdefault("items", [])


def _insert_after(
    target: list[WorkspaceNode],
    node: WorkspaceNode,
    after_id: str | None,
) -> None:
    """Insert at the front, after ``after_id``, or at the tail if it is gone."""
    if not after_id:
        target.insert(0, node)
        return
    for index, sibling in enumerate(target):
        if node_identifier(sibling) == after_id:
            target.insert(index + 1, node)
            return
    target.append(node)


def add_doc_to_container(
    root: list[WorkspaceNode],
    container_id: str | None,
    file: str,
    title: str,
    after_id: str | None = None,
) -> WorkspaceNode:
    """Add a doc reference to a container (``None`` for the root level).

    Args:
        root: Workspace forest, mutated in place.
        container_id: Target container, or None for the root level.
        file: Document file name; must not already be in the tree.
        title: Display title stored on the reference.
        after_id: Sibling to insert after; front of the list when omitted.

    Returns:
        The new doc node.

    Raises:
        DuplicateDocumentError: If ``file`` is already referenced.
        NodeNotFoundError: If the container does not exist.

    """
    if find_doc_node(root, file) is not None:
        msg = f'Document "{file}" already exists in workspace'
        raise DuplicateDocumentError(msg)
    target = _items_of(root, container_id)
    if target is None:
        msg = f'Container "{container_id}" not found'
        raise NodeNotFoundError(msg)

    doc: WorkspaceNode = {"type": "doc", "file": file, "title": title}
    _insert_after(target, doc, after_id)
    return doc


def add_container(
    root: list[WorkspaceNode],
    parent_id: str | None,
    name: str,
) -> WorkspaceNode:
    """Create an empty container at the front of ``parent_id``'s items.

    Raises:
        MaxDepthExceededError: If the container would be nested too deeply.
        NodeNotFoundError: If the parent container does not exist.

    """
    target = _items_of(root, parent_id)
    if target is None:
        msg = f'Parent container "{parent_id}" not found'
        raise NodeNotFoundError(msg)
    if _insertion_depth(root, parent_id) >= MAX_CONTAINER_DEPTH:
        msg = f"Maximum nesting depth ({MAX_CONTAINER_DEPTH}) reached"
        raise MaxDepthExceededError(msg)

    container: WorkspaceNode = {
        "type": "container",
        "id": generate_node_id(),
        "name": name,
        "items": [],
    }
    target.insert(0, container)
    return container


def remove_node(root: list[WorkspaceNode], identifier: str) -> WorkspaceNode:
    """Detach a doc (by file) or container (by id) and return its subtree."""
    found = _find_by_identifier(root, identifier)
    if found is None:
        msg = f'Node "{identifier}" not found'
        raise NodeNotFoundError(msg)
    return found.parent.pop(found.index)


def move_node(
    root: list[WorkspaceNode],
    identifier: str,
    target_container_id: str | None,
    after_id: str | None = None,
) -> None:
    """Move a node into another container or the root level.

    On failure the node is left at the end of the root level and the error
    is raised, so nothing is lost.

    Raises:
        NodeNotFoundError: If the node or the target container is missing.
        MaxDepthExceededError: If the moved subtree would nest too deeply.

    """
    removed = remove_node(root, identifier)

    target = _items_of(root, target_container_id)
    if target is None:
        root.append(removed)
        msg = f'Target container "{target_container_id}" not found'
        raise NodeNotFoundError(msg)

    depth = _insertion_depth(root, target_container_id)
    if depth + _subtree_height(removed) > MAX_CONTAINER_DEPTH:
        root.append(removed)
        msg = f"Cannot move: would exceed max depth ({MAX_CONTAINER_DEPTH})"
        raise MaxDepthExceededError(msg)

    _insert_after(target, removed, after_id)


def reorder_node(
    root: list[WorkspaceNode],
    identifier: str,
    after_id: str | None = None,
) -> None:
    """Move a node within its current parent list."""
    found = _find_by_identifier(root, identifier)
    if found is None:
        msg = f'Node "{identifier}" not found'
        raise NodeNotFoundError(msg)
    node = found.parent.pop(found.index)
    _insert_after(found.parent, node, after_id)


def rename_container(root: list[WorkspaceNode], container_id: str, name: str) -> None:
    """Rename a container in place."""
    found = find_container(root, container_id)
    if found is None:
        msg = f'Container "{container_id}" not found'
        raise NodeNotFoundError(msg)
    found.node["name"] = name


def collect_all_files(nodes: list[WorkspaceNode]) -> list[str]:
    """Return every referenced file in tree order."""
    return [
        node["file"]
        for node, _parent, _index, _depth in _walk(nodes)
        if node.get("type") == "doc" and node.get("file")
    ]


def count_docs(nodes: list[WorkspaceNode]) -> int:
    """Count doc references anywhere in the tree."""
    return len(collect_all_files(nodes))


def count_containers(nodes: list[WorkspaceNode]) -> int:
    """Count containers anywhere in the tree."""
    return sum(1 for node, *_ in _walk(nodes) if node.get("type") == "container")
