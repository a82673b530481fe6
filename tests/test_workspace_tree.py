"""Tests for workspace tree operations."""

import pytest
from helpers import sample_tree

from openwriter.workspace_tree import (
    DuplicateDocumentError,
    MaxDepthExceededError,
    NodeNotFoundError,
    add_container,
    add_doc_to_container,
    collect_all_files,
    count_containers,
    count_docs,
    find_container,
    find_doc_node,
    get_depth,
    move_node,
    remove_node,
    rename_container,
    reorder_node,
)


def _ids(nodes: list[dict]) -> list[str]:
    return [node.get("file") or node.get("id") for node in nodes]


def test_find_and_depth() -> None:
    tree = sample_tree()

    found = find_doc_node(tree, "scene1.md")
    assert found is not None  # noqa: S101
    assert found.node["title"] == "Scene 1"  # noqa: S101
    assert found.index == 0  # noqa: S101

    assert get_depth(tree, "intro.md") == 0  # noqa: S101
    assert get_depth(tree, "scenes") == 1  # noqa: S101
    assert get_depth(tree, "scene1.md") == 2  # noqa: S101, PLR2004
    assert get_depth(tree, "missing.md") == -1  # noqa: S101


def test_doc_children_are_traversed() -> None:
    """Containers nested under a doc's children are part of the tree."""
    tree = [
        {
            "type": "doc",
            "file": "a.md",
            "title": "A",
            "children": [
                {
                    "type": "container",
                    "id": "notes",
                    "name": "Notes",
                    "items": [{"type": "doc", "file": "n.md", "title": "N"}],
                },
            ],
        },
    ]

    assert find_container(tree, "notes") is not None  # noqa: S101
    assert get_depth(tree, "n.md") == 2  # noqa: S101, PLR2004
    assert collect_all_files(tree) == ["a.md", "n.md"]  # noqa: S101
    with pytest.raises(DuplicateDocumentError):
        add_doc_to_container(tree, None, "n.md", "N again")


def test_add_doc_positions() -> None:
    tree = sample_tree()

    add_doc_to_container(tree, "part1", "front.md", "Front")
    add_doc_to_container(tree, "part1", "after.md", "After", after_id="ch1.md")
    add_doc_to_container(tree, "part1", "tail.md", "Tail", after_id="gone.md")

    items = find_container(tree, "part1").node["items"]
    assert _ids(items) == ["front.md", "ch1.md", "after.md", "scenes", "tail.md"]  # noqa: S101


def test_add_duplicate_doc_leaves_tree_unchanged() -> None:
    tree = sample_tree()
    with pytest.raises(DuplicateDocumentError):
        add_doc_to_container(tree, None, "scene1.md", "Copy")
    assert tree == sample_tree()  # noqa: S101


def test_add_doc_to_missing_container() -> None:
    tree = sample_tree()
    with pytest.raises(NodeNotFoundError):
        add_doc_to_container(tree, "nope", "new.md", "New")


def test_container_depth_limit() -> None:
    """Three levels of containers are allowed; a fourth is rejected."""
    tree: list[dict] = []
    first = add_container(tree, None, "c1")
    second = add_container(tree, first["id"], "c2")
    third = add_container(tree, second["id"], "c3")

    with pytest.raises(MaxDepthExceededError):
        add_container(tree, third["id"], "c4")
    assert count_containers(tree) == 3  # noqa: S101, PLR2004
    assert len(first["id"]) == 8  # noqa: S101, PLR2004


def test_add_container_goes_to_front() -> None:
    tree = sample_tree()
    container = add_container(tree, None, "New")
    assert tree[0] is container  # noqa: S101
    assert container["items"] == []  # noqa: S101

    with pytest.raises(NodeNotFoundError):
        add_container(tree, "nope", "Orphan")


def test_move_into_container() -> None:
    tree = sample_tree()
    move_node(tree, "intro.md", "scenes", after_id="scene1.md")

    assert _ids(tree) == ["part1"]  # noqa: S101
    scenes = find_container(tree, "scenes").node
    assert _ids(scenes["items"]) == ["scene1.md", "intro.md"]  # noqa: S101


def test_move_to_root() -> None:
    tree = sample_tree()
    move_node(tree, "scenes", None)
    assert _ids(tree) == ["scenes", "intro.md", "part1"]  # noqa: S101


def test_move_too_deep_keeps_node_at_root() -> None:
    """A rejected move reinserts the node at the root instead of losing it."""
    tree = sample_tree()
    deep = add_container(tree, "scenes", "Deep")
    add_container(tree, None, "Loose")
    loose = tree[0]
    add_container(tree, loose["id"], "Inner")
    docs_before = count_docs(tree)
    containers_before = count_containers(tree)

    with pytest.raises(MaxDepthExceededError):
        move_node(tree, loose["id"], deep["id"])

    assert tree[-1] is loose  # noqa: S101
    assert count_docs(tree) == docs_before  # noqa: S101
    assert count_containers(tree) == containers_before  # noqa: S101


def test_move_to_missing_target_keeps_node_at_root() -> None:
    tree = sample_tree()
    with pytest.raises(NodeNotFoundError):
        move_node(tree, "scene1.md", "nope")

    assert tree[-1]["file"] == "scene1.md"  # noqa: S101
    assert count_docs(tree) == 3  # noqa: S101, PLR2004


def test_move_into_own_descendant_is_rejected() -> None:
    tree = sample_tree()
    with pytest.raises(NodeNotFoundError):
        move_node(tree, "part1", "scenes")

    assert tree[-1]["id"] == "part1"  # noqa: S101
    assert count_docs(tree) == 3  # noqa: S101, PLR2004


def test_remove_node_returns_subtree() -> None:
    tree = sample_tree()
    removed = remove_node(tree, "part1")

    assert _ids(removed["items"]) == ["ch1.md", "scenes"]  # noqa: S101
    assert collect_all_files(tree) == ["intro.md"]  # noqa: S101
    with pytest.raises(NodeNotFoundError):
        remove_node(tree, "part1")


def test_reorder_within_parent() -> None:
    tree = sample_tree()
    reorder_node(tree, "intro.md", after_id="part1")
    assert _ids(tree) == ["part1", "intro.md"]  # noqa: S101

    reorder_node(tree, "scenes")
    assert _ids(tree[0]["items"]) == ["scenes", "ch1.md"]  # noqa: S101


def test_rename_container() -> None:
    tree = sample_tree()
    rename_container(tree, "scenes", "Scenes, revised")
    assert find_container(tree, "scenes").node["name"] == "Scenes, revised"  # noqa: S101

    with pytest.raises(NodeNotFoundError):
        rename_container(tree, "nope", "x")


def test_counts() -> None:
    tree = sample_tree()
    assert count_docs(tree) == 3  # noqa: S101, PLR2004
    assert count_containers(tree) == 2  # noqa: S101, PLR2004
    assert collect_all_files(tree) == ["intro.md", "ch1.md", "scene1.md"]  # noqa: S101
