"""Block tree -> markdown serialization.

Metadata is written as minified JSON between ``---`` delimiters (valid YAML,
so any frontmatter reader accepts it). Pending state is recomputed from node
attributes on every save. Round trips are semantic, not byte-identical.
"""

import json
import re
from collections.abc import Callable, Iterable, Mapping, Sequence
from typing import Any

from .markdown_parse import EMPTY_PARAGRAPH_SENTINEL
from .nodes import Node, count_words, node_text, plain_text
from .pending import collect_pending_state

__all__ = [
    "count_words",
    "document_word_count",
    "escape_text",
    "inline_to_markdown",
    "node_text",
    "node_to_markdown",
    "nodes_to_markdown",
    "tiptap_to_markdown",
]

LIST_TYPES = frozenset({"bulletList", "orderedList", "taskList"})
# Separates consecutive lists that markdown would otherwise merge.
LIST_SEPARATOR = "<!---->"
HARD_BREAK = "<br>"
# Subscript and superscript delimiters may not enclose bare whitespace.
SPACE_ESCAPED_MARKS = frozenset({"subscript", "superscript"})

# (kind, text, marks); kind is "text", "space", "code" or "raw".
InlineRun = tuple[str, str, list[Node]]

_ESCAPE_PATTERN = re.compile(
    r"[\\`*_\[\]~^|]|=(?==)|\+(?=\+)|<(?=[A-Za-z/!?])|&(?=#?[A-Za-z0-9]+;)",
)
_BLOCK_START_PATTERN = re.compile(r"^(?:#{1,6}(?=\s|$)|>|[-+](?=\s|$)|-{3,})")
_ORDERED_START_PATTERN = re.compile(r"^(\d{1,9})([.)])(?=\s|$)")
# Markdown strips spaces and tabs at the start and end of a block's text.
_EDGE_WHITESPACE_PATTERN = re.compile(r"^[ \t]+|[ \t]+$")
# A trailing run of ``#`` would be read as an ATX heading's closing sequence.
_CLOSING_HASHES_PATTERN = re.compile(r"(^|[ \t])(#+)$")
_SPACE_PATTERN = re.compile(r"[ \t]")

MARK_SYNTAX = {
    "bold": "**",
    "italic": "*",
    "strike": "~~",
    "underline": "++",
    "highlight": "==",
    "subscript": "~",
    "superscript": "^",
}


def tiptap_to_markdown(
    doc: Node,
    title: str,
    metadata: Mapping[str, Any] | None = None,
) -> str:
    """Serialize a document to markdown with JSON frontmatter.

    Args:
        doc: Root ``doc`` node.
        title: Document title, stored in frontmatter.
        metadata: Other frontmatter fields (``docId`` and caller fields),
            written verbatim except ``pending``, which is recomputed.

    Returns:
        Full markdown text including frontmatter.

    """
    meta: dict[str, Any] = {**(metadata or {}), "title": title}

    pending = collect_pending_state(doc)
    if pending:
        meta["pending"] = pending
    else:
        meta.pop("pending", None)

    meta = {key: value for key, value in meta.items() if value is not None}
    frontmatter = json.dumps(
        meta,
        ensure_ascii=False,
        separators=(",", ":"),
        default=str,
    )
    return f"---\n{frontmatter}\n---\n\n{nodes_to_markdown(doc.get('content') or [])}"


def document_word_count(doc: Node) -> int:
    """Word count of a document's plain text."""
    return count_words(plain_text(doc.get("content") or []))


def nodes_to_markdown(nodes: Sequence[Node]) -> str:
    """Serialize a sequence of block nodes."""
    parts = []
    previous_type = None
    for node in nodes:
        node_type = node.get("type")
        if previous_type in LIST_TYPES and node_type in LIST_TYPES:
            parts.append(f"{LIST_SEPARATOR}\n\n")
        parts.append(node_to_markdown(node))
        previous_type = node_type
    return "".join(parts)


def node_to_markdown(node: Node) -> str:  # noqa: C901, PLR0911
    """Serialize one block node; the result ends with a blank line."""
    node_type = node.get("type")
    attrs = node.get("attrs") or {}
    content = node.get("content") or []

    if node_type == "heading":
        level = min(max(int(attrs.get("level") or 1), 1), 6)
        text = _protect_edges(inline_to_markdown(content))
        text = _CLOSING_HASHES_PATTERN.sub(r"\1\\\2", text)
        return f"{'#' * level} {text}\n\n"
    if node_type == "paragraph":
        return f"{_paragraph_text(node)}\n\n"
    if node_type == "bulletList":
        return _list_to_markdown(content, lambda _index, _item: "- ")
    if node_type == "orderedList":
        start = int(attrs.get("start") or 1)
        return _list_to_markdown(content, lambda index, _item: f"{start + index}. ")
    if node_type == "taskList":
        return _list_to_markdown(content, _task_marker)
    if node_type == "blockquote":
        inner = nodes_to_markdown(content).rstrip("\n")
        quoted = "\n".join(f"> {line}" if line else ">" for line in inner.split("\n"))
        return f"{quoted}\n\n"
    if node_type == "codeBlock":
        return _code_block(node)
    if node_type == "horizontalRule":
        return "---\n\n"
    if node_type == "image":
        return f"{_image(attrs)}\n\n"
    if node_type == "table":
        return _table_to_markdown(node)
    if content:
        return nodes_to_markdown(content)
    return node.get("text") or ""


def _paragraph_text(node: Node) -> str:
    """Inline markdown for a paragraph, or the sentinel when it is empty."""
    text = inline_to_markdown(node.get("content") or [])
    if not text:
        return EMPTY_PARAGRAPH_SENTINEL
    text = _protect_edges(text)
    # Keep literal text from being read back as a heading, quote or list.
    ordered = _ORDERED_START_PATTERN.match(text)
    if ordered:
        return f"{ordered.group(1)}\\{text[len(ordered.group(1)) :]}"
    if _BLOCK_START_PATTERN.match(text):
        return f"\\{text}"
    return text


def _protect_edges(text: str) -> str:
    """Encode leading and trailing spaces/tabs as character references."""
    return _EDGE_WHITESPACE_PATTERN.sub(
        lambda match: "".join(f"&#{ord(char)};" for char in match.group(0)),
        text,
    )


def _task_marker(_index: int, item: Node) -> str:
    checked = "x" if (item.get("attrs") or {}).get("checked") else " "
    return f"- [{checked}] "


def _indent(block: str, first: str, rest: str) -> str:
    lines = block.split("\n")
    out = [f"{first}{lines[0]}" if lines[0] else first.rstrip()]
    out.extend(f"{rest}{line}" if line else "" for line in lines[1:])
    return "\n".join(out)


def _needs_blank_line(node: Node) -> bool:
    """Whether a block must be separated from preceding item text."""
    if node.get("type") in {"bulletList", "taskList"}:
        return False
    if node.get("type") == "orderedList":
        return int((node.get("attrs") or {}).get("start") or 1) != 1
    return True


def _list_to_markdown(
    items: Sequence[Node],
    marker_for: Callable[[int, Node], str],
) -> str:
    if not items:
        return ""
    out = []
    for index, item in enumerate(items):
        marker = marker_for(index, item)
        # Continuation lines align with the text after a plain bullet/number.
        pad = " " * (2 if marker.startswith("- ") else len(marker))
        children = item.get("content") or []
        if not children:
            out.append(f"{marker.rstrip()}\n")
            continue

        first, rest = children[0], children[1:]
        if first.get("type") == "paragraph":
            out.append(f"{marker}{_paragraph_text(first)}\n")
        else:
            block = node_to_markdown(first).rstrip("\n")
            out.append(f"{_indent(block, marker, pad)}\n")

        for child in rest:
            if _needs_blank_line(child):
                out.append("\n")
            block = node_to_markdown(child).rstrip("\n")
            out.append(f"{_indent(block, pad, pad)}\n")
    return "".join(out) + "\n"


def _code_block(node: Node) -> str:
    language = (node.get("attrs") or {}).get("language") or ""
    text = "".join(child.get("text") or "" for child in node.get("content") or [])
    longest = max((len(run) for run in re.findall(r"`+", text)), default=0)
    fence = "`" * max(3, longest + 1)
    return f"{fence}{language}\n{text}\n{fence}\n\n"


def _image(attrs: Mapping[str, Any]) -> str:
    src = str(attrs.get("src") or "")
    alt = escape_text(str(attrs.get("alt") or ""))
    if re.search(r"[\s()]", src):
        src = f"<{src}>"
    return f"![{alt}]({src})"


def _table_to_markdown(node: Node) -> str:
    rows = node.get("content") or []
    if not rows:
        return ""

    lines = []
    for index, row in enumerate(rows):
        cells = row.get("content") or []
        texts = []
        for cell in cells:
            paragraph = (cell.get("content") or [None])[0]
            texts.append(inline_to_markdown(paragraph.get("content") or []) if paragraph else "")
        header_line = f"| {' | '.join(texts)} |"
        lines.append(header_line)

        if index == 0:
            has_headers = any(cell.get("type") == "tableHeader" for cell in cells)
            if has_headers or len(rows) > 1:
                # Column count comes from the rendered header's unescaped pipes.
                columns = max(len(re.findall(r"(?<!\\)\|", header_line)) - 1, 1)
                lines.append(f"| {' | '.join(['---'] * columns)} |")

    return "\n".join(lines) + "\n\n"


# ---- Inline mark serialization ----


def escape_text(text: str) -> str:
    """Backslash-escape characters that would otherwise become markup."""
    return _ESCAPE_PATTERN.sub(lambda match: f"\\{match.group(0)}", text)


def _code_span(text: str) -> str:
    longest = max((len(run) for run in re.findall(r"`+", text)), default=0)
    ticks = "`" * (longest + 1)
    if text.startswith(("`", " ")) or text.endswith(("`", " ")):
        return f"{ticks} {text} {ticks}"
    return f"{ticks}{text}{ticks}"


def _marks_equal(a: Node, b: Node) -> bool:
    if a["type"] != b["type"]:
        return False
    if a["type"] == "link":
        return (a.get("attrs") or {}).get("href") == (b.get("attrs") or {}).get("href")
    return True


def _mark_syntax(mark: Node, *, is_open: bool) -> str:
    if mark["type"] == "link":
        href = (mark.get("attrs") or {}).get("href") or ""
        return "[" if is_open else f"](<{href}>)"
    return MARK_SYNTAX.get(mark["type"], "")


def _common_marks(a: Sequence[Node], b: Sequence[Node]) -> list[Node]:
    """Longest shared prefix of two mark lists."""
    common = 0
    while common < len(a) and common < len(b) and _marks_equal(a[common], b[common]):
        common += 1
    return list(a[:common])


def _neighbour_marks(runs: Iterable[InlineRun]) -> list[Node]:
    for kind, _text, marks in runs:
        if kind != "space":
            return marks
    return []


def _inline_runs(nodes: Sequence[Node]) -> list[InlineRun]:
    """Flatten inline nodes into ``(kind, text, marks)`` runs.

    Whitespace at either end of a formatted text node becomes a separate
    ``space`` run. It keeps only the marks shared by the runs on both sides,
    so no delimiter is ever written next to whitespace.
    """
    runs: list[InlineRun] = []
    for node in nodes:
        node_type = node.get("type")
        if node_type == "hardBreak":
            runs.append(("raw", HARD_BREAK, []))
            continue
        if node_type == "image":
            runs.append(("raw", _image(node.get("attrs") or {}), []))
            continue
        if node_type != "text":
            continue

        text = node.get("text") or ""
        if not text:
            continue
        marks = node.get("marks") or []
        target = [m for m in marks if m.get("type") == "link" or m.get("type") in MARK_SYNTAX]
        if any(mark.get("type") == "code" for mark in marks):
            runs.append(("code", text, target))
            continue
        core = text.strip()
        if not target or core == text:
            runs.append(("text", text, target))
            continue
        if not core:
            runs.append(("space", text, []))
            continue

        start = len(text) - len(text.lstrip())
        end = start + len(core)
        if start:
            runs.append(("space", text[:start], []))
        runs.append(("text", core, target))
        if end < len(text):
            runs.append(("space", text[end:], []))

    for index, (kind, text, _marks) in enumerate(runs):
        if kind == "space":
            before = _neighbour_marks(reversed(runs[:index]))
            after = _neighbour_marks(runs[index + 1 :])
            runs[index] = (kind, text, _common_marks(before, after))
    return runs


def inline_to_markdown(nodes: Sequence[Node]) -> str:
    """Serialize inline nodes, opening and closing marks minimally.

    Marks shared with the previous run stay open; the rest are closed
    innermost-first and the new ones opened in order. Spaces inside
    subscript and superscript are backslash-escaped.
    """
    result: list[str] = []
    open_marks: list[Node] = []

    for kind, text, marks in _inline_runs(nodes):
        if kind == "raw":
            result.append(text)
            continue

        common = len(_common_marks(open_marks, marks))
        result.extend(_mark_syntax(mark, is_open=False) for mark in reversed(open_marks[common:]))
        result.extend(_mark_syntax(mark, is_open=True) for mark in marks[common:])
        open_marks = list(marks)

        if kind == "code":
            result.append(_code_span(text))
            continue
        escaped = escape_text(text)
        if any(mark["type"] in SPACE_ESCAPED_MARKS for mark in marks):
            escaped = _SPACE_PATTERN.sub(lambda match: f"\\{match.group(0)}", escaped)
        result.append(escaped)

    result.extend(_mark_syntax(mark, is_open=False) for mark in reversed(open_marks))
    return "".join(result)
