"""Configuration settings."""

import os
from pathlib import Path

DATA_DIR_ENV = "OPENWRITER_DATA_DIR"
LOG_LEVEL_ENV = "OPENWRITER_LOG_LEVEL"
VERSIONS_DIRNAME = ".versions"
WORKSPACES_DIRNAME = "_workspaces"
TEMP_PREFIX = "_untitled-"
DEFAULT_TITLE = "Untitled"

# Version history
MIN_SNAPSHOT_INTERVAL_MS = 30_000
MAX_VERSIONS = 50
KEEP_ALL_WITHIN_MS = 7 * 24 * 60 * 60 * 1000

# Workspace tree
MAX_CONTAINER_DEPTH = 3

# Leaf blocks carry text or media directly and are the unit of pending state.
LEAF_BLOCK_TYPES = frozenset(
    {"paragraph", "heading", "codeBlock", "horizontalRule", "table", "image"},
)


def get_data_dir() -> Path:
    """Get the root directory holding documents, versions and workspaces."""
    configured = os.environ.get(DATA_DIR_ENV)
    if configured:
        return Path(configured).expanduser()
    return Path.home() / ".openwriter"


def get_versions_dir() -> Path:
    """Get the directory holding per-document snapshot folders."""
    return get_data_dir() / VERSIONS_DIRNAME


def get_workspaces_dir() -> Path:
    """Get the directory holding workspace manifests."""
    return get_data_dir() / WORKSPACES_DIRNAME
