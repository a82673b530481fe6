"""Tests for the CLI."""

import json
import re
from pathlib import Path

from typer.testing import CliRunner

from openwriter.cli import app

runner = CliRunner()


def test_cli_parse_and_render(tmp_path: Path) -> None:
    """Parse a file to JSON and render the JSON back to markdown."""
    source = tmp_path / "note.md"
    source.write_text('---\n{"docId":"abcd1234","title":"Note"}\n---\n\n# Hi\n\nSome **bold** text\n')

    result = runner.invoke(app, ["parse", str(source)])
    assert result.exit_code == 0
    parsed = json.loads(result.stdout)
    assert parsed["title"] == "Note"
    assert [node["type"] for node in parsed["document"]["content"]] == ["heading", "paragraph"]

    tree_file = tmp_path / "note.json"
    tree_file.write_text(result.stdout)
    rendered = runner.invoke(app, ["render", str(tree_file)])
    assert rendered.exit_code == 0
    assert rendered.stdout.startswith('---\n{"docId":"abcd1234","title":"Note"}\n---\n\n# Hi\n')
    assert "Some **bold** text" in rendered.stdout


def test_cli_parse_body_only(tmp_path: Path) -> None:
    source = tmp_path / "fragment.md"
    source.write_text("- [ ] task\n")

    result = runner.invoke(app, ["parse", str(source), "--body-only"])
    assert result.exit_code == 0
    assert json.loads(result.stdout)[0]["type"] == "taskList"


def test_cli_docs(tmp_path: Path) -> None:
    data_dir = tmp_path / "data"

    result = runner.invoke(app, ["docs", "new", "Chapter One", "--data-dir", str(data_dir)])
    assert result.exit_code == 0
    assert (data_dir / "Chapter One.md").exists()

    listed = runner.invoke(app, ["docs", "list", "--data-dir", str(data_dir)])
    assert listed.exit_code == 0
    assert "Chapter One.md: Chapter One" in listed.stdout

    again = runner.invoke(app, ["docs", "new", "Chapter One", "--data-dir", str(data_dir)])
    assert again.exit_code == 1
    assert "already exists" in again.output


def test_cli_versions_flow(tmp_path: Path) -> None:
    data_dir = tmp_path / "data"
    data_dir.mkdir()
    doc_path = data_dir / "story.md"
    doc_path.write_text('---\n{"docId":"abcd1234","title":"Story"}\n---\n\nFirst line\n\n')

    snap = runner.invoke(app, ["versions", "snapshot", str(doc_path), "--data-dir", str(data_dir)])
    assert snap.exit_code == 0
    match = re.search(r"Snapshot (\d+) written", snap.stdout)
    assert match
    timestamp = match.group(1)

    listed = runner.invoke(app, ["versions", "list", str(doc_path), "--data-dir", str(data_dir)])
    assert listed.exit_code == 0
    assert timestamp in listed.stdout

    shown = runner.invoke(
        app,
        ["versions", "show", str(doc_path), timestamp, "--data-dir", str(data_dir)],
    )
    assert shown.exit_code == 0
    assert "First line" in shown.stdout

    doc_path.write_text('---\n{"docId":"abcd1234","title":"Story"}\n---\n\nSecond line\n\n')
    restored = runner.invoke(
        app,
        [
            "versions",
            "restore",
            str(doc_path),
            timestamp,
            "--mode",
            "review",
            "--data-dir",
            str(data_dir),
        ],
    )
    assert restored.exit_code == 0
    assert "First line" in doc_path.read_text()
    assert '"s":"rewrite"' in doc_path.read_text()


def test_cli_versions_missing(tmp_path: Path) -> None:
    doc_path = tmp_path / "story.md"
    doc_path.write_text('---\n{"docId":"abcd1234","title":"Story"}\n---\n\nText\n')

    result = runner.invoke(
        app,
        ["versions", "show", str(doc_path), "123", "--data-dir", str(tmp_path)],
    )
    assert result.exit_code == 1
    assert "Version 123 not found" in result.output


def test_cli_workspace_flow(tmp_path: Path) -> None:
    data_dir = tmp_path / "data"
    data_dir.mkdir()
    (data_dir / "ch1.md").write_text('---\n{"title":"Chapter 1"}\n---\n\nText\n')

    created = runner.invoke(app, ["workspace", "create", "Book", "--data-dir", str(data_dir)])
    assert created.exit_code == 0
    ws_file = next((data_dir / "_workspaces").glob("book-*.json")).name

    container = runner.invoke(
        app,
        ["workspace", "add-container", ws_file, "Part 1", "--data-dir", str(data_dir)],
    )
    assert container.exit_code == 0
    container_id = re.search(r"Container '(\w+)' created", container.stdout).group(1)

    added = runner.invoke(
        app,
        ["workspace", "add-doc", ws_file, "ch1.md", "--data-dir", str(data_dir)],
    )
    assert added.exit_code == 0

    moved = runner.invoke(
        app,
        ["workspace", "move", ws_file, "ch1.md", "--to", container_id, "--data-dir", str(data_dir)],
    )
    assert moved.exit_code == 0

    shown = runner.invoke(app, ["workspace", "show", ws_file, "--data-dir", str(data_dir)])
    assert shown.exit_code == 0
    manifest = json.loads(shown.stdout)
    assert manifest["title"] == "Book"
    assert manifest["root"][0]["items"] == [{"type": "doc", "file": "ch1.md", "title": "Chapter 1"}]

    listed = runner.invoke(app, ["workspace", "list", "--data-dir", str(data_dir)])
    assert f"{ws_file}: Book (1 docs)" in listed.stdout

    removed = runner.invoke(
        app,
        ["workspace", "remove", ws_file, container_id, "--data-dir", str(data_dir)],
    )
    assert removed.exit_code == 0
    shown = runner.invoke(app, ["workspace", "show", ws_file, "--data-dir", str(data_dir)])
    assert json.loads(shown.stdout)["root"] == []


def test_cli_workspace_errors(tmp_path: Path) -> None:
    data_dir = tmp_path / "data"

    missing = runner.invoke(app, ["workspace", "show", "missing.json", "--data-dir", str(data_dir)])
    assert missing.exit_code == 1
    assert "Error: Workspace not found" in missing.output

    runner.invoke(app, ["workspace", "create", "Book", "--data-dir", str(data_dir)])
    ws_file = next((data_dir / "_workspaces").glob("book-*.json")).name
    runner.invoke(app, ["workspace", "add-doc", ws_file, "a.md", "--data-dir", str(data_dir)])

    duplicate = runner.invoke(
        app,
        ["workspace", "add-doc", ws_file, "a.md", "--data-dir", str(data_dir)],
    )
    assert duplicate.exit_code == 1
    assert "already exists in workspace" in duplicate.output
