"""CLI entry point using Typer."""

import json
from collections.abc import Callable
from functools import wraps
from pathlib import Path
from typing import Annotated, Any

import typer

from openwriter.config import DEFAULT_TITLE, VERSIONS_DIRNAME, WORKSPACES_DIRNAME
from openwriter.documents import (
    document_path_for_title,
    list_documents,
    load_document,
    restore_document,
    save_document,
)
from openwriter.logging_utils import setup_logging
from openwriter.markdown_parse import markdown_to_nodes, markdown_to_tiptap
from openwriter.markdown_serialize import tiptap_to_markdown
from openwriter.versions import VersionStore
from openwriter.workspace_tree import WorkspaceTreeError, find_doc_node
from openwriter.workspaces import (
    add_container_to_workspace,
    add_doc,
    create_workspace,
    get_doc_title,
    get_workspace,
    list_workspaces,
    move_doc,
    remove_container,
    remove_doc,
)

app = typer.Typer(help="OpenWriter CLI - markdown documents, versions and workspaces")
docs_app = typer.Typer(help="Document files")
versions_app = typer.Typer(help="Version history")
workspace_app = typer.Typer(help="Workspace manifests")

app.add_typer(docs_app, name="docs")
app.add_typer(versions_app, name="versions")
app.add_typer(workspace_app, name="workspace")

DataDirOption = Annotated[
    Path | None,
    typer.Option("--data-dir", help="Data directory (default: $OPENWRITER_DATA_DIR)"),
]


def handle_cli_errors[R](func: Callable[..., R]) -> Callable[..., R]:
    """Handle common CLI errors."""

    @wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> R:  # noqa: ANN401
        try:
            return func(*args, **kwargs)
        except (WorkspaceTreeError, FileNotFoundError) as e:
            typer.echo(f"Error: {e}", err=True)
            raise typer.Exit(code=1) from e
        except Exception as e:
            typer.echo(f"Error: {e}", err=True)
            raise typer.Exit(code=1) from e

    return wrapper


def _echo_json(payload: Any) -> None:  # noqa: ANN401
    typer.echo(json.dumps(payload, indent=2, ensure_ascii=False, default=str))


def _store(data_dir: Path | None) -> VersionStore:
    return VersionStore(data_dir / VERSIONS_DIRNAME if data_dir else None)


def _workspaces_dir(data_dir: Path | None) -> Path | None:
    return data_dir / WORKSPACES_DIRNAME if data_dir else None


# ---- Conversion ----


@app.command("parse")
@handle_cli_errors
def cmd_parse(
    path: Annotated[Path, typer.Argument(help="Markdown file to parse")],
    body_only: Annotated[
        bool,
        typer.Option("--body-only", help="Parse as a fragment without frontmatter"),
    ] = False,
) -> None:
    """Print the block tree of a markdown file as JSON."""
    setup_logging()
    text = path.read_text(encoding="utf-8")
    _echo_json(markdown_to_nodes(text) if body_only else markdown_to_tiptap(text))


@app.command("render")
@handle_cli_errors
def cmd_render(
    path: Annotated[Path, typer.Argument(help="JSON file from 'parse' or a bare doc node")],
    title: Annotated[str | None, typer.Option(help="Override the title")] = None,
) -> None:
    """Print markdown for a JSON block tree."""
    setup_logging()
    data = json.loads(path.read_text(encoding="utf-8"))
    if data.get("type") == "doc":
        document, metadata, stored_title = data, {}, None
    else:
        document = data["document"]
        metadata = data.get("metadata") or {}
        stored_title = data.get("title")
    typer.echo(tiptap_to_markdown(document, title or stored_title or DEFAULT_TITLE, metadata), nl=False)


# ---- Documents ----


@docs_app.command("list")
@handle_cli_errors
def cmd_docs_list(data_dir: DataDirOption = None) -> None:
    """List documents, most recently modified first."""
    setup_logging()
    documents = list_documents(data_dir)
    if not documents:
        typer.echo("No documents found.")
    for info in documents:
        typer.echo(f"- {info['filename']}: {info['title']} ({info['wordCount']} words)")


@docs_app.command("new")
@handle_cli_errors
def cmd_docs_new(
    title: Annotated[str, typer.Argument(help="Title of the new document")],
    data_dir: DataDirOption = None,
) -> None:
    """Create an empty document."""
    setup_logging()
    path = document_path_for_title(title, data_dir)
    if path.exists():
        msg = f"Document already exists: {path}"
        raise FileExistsError(msg)
    metadata: dict[str, Any] = {}
    VersionStore.ensure_doc_id(metadata)
    document = {"type": "doc", "content": markdown_to_nodes("")}
    save_document(path, document, title, metadata)
    typer.echo(f"Document '{path.name}' created successfully.")


# ---- Versions ----


@versions_app.command("list")
@handle_cli_errors
def cmd_versions_list(
    path: Annotated[Path, typer.Argument(help="Document file")],
    data_dir: DataDirOption = None,
) -> None:
    """List stored versions of a document, newest first."""
    setup_logging()
    parsed = load_document(path)
    versions = _store(data_dir).list_versions(parsed["metadata"]["docId"])
    if not versions:
        typer.echo("No versions found.")
    for version in versions:
        typer.echo(
            f"- {version['timestamp']} {version['date']} "
            f"{version['size']} bytes, {version['wordCount']} words",
        )


@versions_app.command("show")
@handle_cli_errors
def cmd_versions_show(
    path: Annotated[Path, typer.Argument(help="Document file")],
    timestamp: Annotated[int, typer.Argument(help="Version timestamp (epoch ms)")],
    data_dir: DataDirOption = None,
) -> None:
    """Print the markdown of one stored version."""
    setup_logging()
    parsed = load_document(path)
    content = _store(data_dir).get_version_content(parsed["metadata"]["docId"], timestamp)
    if content is None:
        msg = f"Version {timestamp} not found"
        raise FileNotFoundError(msg)
    typer.echo(content, nl=False)


@versions_app.command("snapshot")
@handle_cli_errors
def cmd_versions_snapshot(
    path: Annotated[Path, typer.Argument(help="Document file")],
    data_dir: DataDirOption = None,
) -> None:
    """Snapshot a document now, regardless of throttling."""
    setup_logging()
    parsed = load_document(path)
    # Persist a freshly assigned docId so the snapshot stays linked to the file.
    save_document(path, parsed["document"], parsed["title"], parsed["metadata"])
    timestamp = _store(data_dir).force_snapshot(parsed["metadata"]["docId"], path)
    if timestamp is None:
        msg = "No snapshot written"
        raise RuntimeError(msg)
    typer.echo(f"Snapshot {timestamp} written.")


@versions_app.command("restore")
@handle_cli_errors
def cmd_versions_restore(
    path: Annotated[Path, typer.Argument(help="Document file")],
    timestamp: Annotated[int, typer.Argument(help="Version timestamp (epoch ms)")],
    mode: Annotated[
        str,
        typer.Option(help="'full' replaces content, 'review' marks it as pending rewrites"),
    ] = "full",
    data_dir: DataDirOption = None,
) -> None:
    """Restore a stored version into the document file."""
    setup_logging()
    restored = restore_document(path, _store(data_dir), timestamp, mode)  # type: ignore[arg-type]
    if restored is None:
        msg = f"Version {timestamp} not found"
        raise FileNotFoundError(msg)
    typer.echo(f"Restored version {timestamp} ({mode}).")


# ---- Workspaces ----


@workspace_app.command("create")
@handle_cli_errors
def cmd_workspace_create(
    title: Annotated[str, typer.Argument(help="Workspace title")],
    voice_profile: Annotated[str | None, typer.Option(help="Voice profile id")] = None,
    data_dir: DataDirOption = None,
) -> None:
    """Create a workspace."""
    setup_logging()
    info = create_workspace(_workspaces_dir(data_dir), title, voice_profile)
    typer.echo(f"Workspace '{info['filename']}' created successfully.")


@workspace_app.command("list")
@handle_cli_errors
def cmd_workspace_list(data_dir: DataDirOption = None) -> None:
    """List workspaces in display order."""
    setup_logging()
    infos = list_workspaces(_workspaces_dir(data_dir))
    if not infos:
        typer.echo("No workspaces found.")
    for info in infos:
        typer.echo(f"- {info['filename']}: {info['title']} ({info['docCount']} docs)")


@workspace_app.command("show")
@handle_cli_errors
def cmd_workspace_show(
    ws_file: Annotated[str, typer.Argument(help="Workspace manifest filename")],
    data_dir: DataDirOption = None,
) -> None:
    """Print a workspace manifest as JSON."""
    setup_logging()
    _echo_json(get_workspace(_workspaces_dir(data_dir), ws_file).to_json())


@workspace_app.command("add-doc")
@handle_cli_errors
def cmd_workspace_add_doc(
    ws_file: Annotated[str, typer.Argument(help="Workspace manifest filename")],
    file: Annotated[str, typer.Argument(help="Document filename")],
    container: Annotated[str | None, typer.Option(help="Target container id")] = None,
    title: Annotated[str | None, typer.Option(help="Title (default: from the file)")] = None,
    after: Annotated[str | None, typer.Option(help="Insert after this doc/container")] = None,
    data_dir: DataDirOption = None,
) -> None:
    """Add a document to a workspace."""
    setup_logging()
    doc_title = title or get_doc_title(file, data_dir)
    add_doc(_workspaces_dir(data_dir), ws_file, container, file, doc_title, after)
    typer.echo(f"Added '{file}' to '{ws_file}'.")


@workspace_app.command("add-container")
@handle_cli_errors
def cmd_workspace_add_container(
    ws_file: Annotated[str, typer.Argument(help="Workspace manifest filename")],
    name: Annotated[str, typer.Argument(help="Container name")],
    parent: Annotated[str | None, typer.Option(help="Parent container id")] = None,
    data_dir: DataDirOption = None,
) -> None:
    """Add a container to a workspace."""
    setup_logging()
    _manifest, container_id = add_container_to_workspace(
        _workspaces_dir(data_dir),
        ws_file,
        parent,
        name,
    )
    typer.echo(f"Container '{container_id}' created.")


@workspace_app.command("move")
@handle_cli_errors
def cmd_workspace_move(
    ws_file: Annotated[str, typer.Argument(help="Workspace manifest filename")],
    identifier: Annotated[str, typer.Argument(help="Doc filename or container id")],
    to: Annotated[str | None, typer.Option(help="Target container id (default: root)")] = None,
    after: Annotated[str | None, typer.Option(help="Insert after this doc/container")] = None,
    data_dir: DataDirOption = None,
) -> None:
    """Move a doc or container."""
    setup_logging()
    move_doc(_workspaces_dir(data_dir), ws_file, identifier, to, after)
    typer.echo(f"Moved '{identifier}'.")


@workspace_app.command("remove")
@handle_cli_errors
def cmd_workspace_remove(
    ws_file: Annotated[str, typer.Argument(help="Workspace manifest filename")],
    identifier: Annotated[str, typer.Argument(help="Doc filename or container id")],
    data_dir: DataDirOption = None,
) -> None:
    """Remove a doc or container (with its contents)."""
    setup_logging()
    workspaces_dir = _workspaces_dir(data_dir)
    manifest = get_workspace(workspaces_dir, ws_file)
    if find_doc_node(manifest.root, identifier) is not None:
        remove_doc(workspaces_dir, ws_file, identifier)
    else:
        remove_container(workspaces_dir, ws_file, identifier)
    typer.echo(f"Removed '{identifier}'.")


def main() -> None:
    """Entry point for the OpenWriter CLI."""
    app()


if __name__ == "__main__":
    main()
