"""OpenWriter core: markdown <-> block tree, version history and workspaces."""

from .documents import (
    document_path_for_title,
    list_documents,
    load_document,
    restore_document,
    save_document,
)
from .markdown_parse import (
    ParsedMarkdown,
    markdown_to_nodes,
    markdown_to_tiptap,
    split_frontmatter,
)
from .markdown_serialize import nodes_to_markdown, tiptap_to_markdown
from .nodes import count_words, plain_text
from .pending import (
    collect_pending_state,
    count_pending_changes,
    has_pending_changes,
    mark_all_nodes_as_pending,
    rehydrate_pending_state,
    strip_pending_attrs,
)
from .versions import VersionInfo, VersionStore, content_hash
from .workspace_tree import (
    DuplicateDocumentError,
    MaxDepthExceededError,
    NodeNotFoundError,
    WorkspaceTreeError,
)
from .workspaces import (
    WorkspaceManifest,
    WorkspaceNotFoundError,
    create_workspace,
    get_workspace,
    list_workspaces,
)

__all__ = [
    "DuplicateDocumentError",
    "MaxDepthExceededError",
    "NodeNotFoundError",
    "ParsedMarkdown",
    "VersionInfo",
    "VersionStore",
    "WorkspaceManifest",
    "WorkspaceNotFoundError",
    "WorkspaceTreeError",
    "collect_pending_state",
    "content_hash",
    "count_pending_changes",
    "count_words",
    "create_workspace",
    "document_path_for_title",
    "get_workspace",
    "has_pending_changes",
    "list_documents",
    "list_workspaces",
    "load_document",
    "mark_all_nodes_as_pending",
    "markdown_to_nodes",
    "markdown_to_tiptap",
    "nodes_to_markdown",
    "plain_text",
    "rehydrate_pending_state",
    "restore_document",
    "save_document",
    "split_frontmatter",
    "strip_pending_attrs",
    "tiptap_to_markdown",
]
