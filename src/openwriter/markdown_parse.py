"""Markdown -> block tree parsing.

Parses markdown (with optional frontmatter) into the editor's block-tree
document. markdown-it produces a flat token stream; bracketing constructs
(lists, blockquotes, tables) are delimited with ``find_closing_token`` and
recursed into. Parsing never raises: unreadable frontmatter is treated as
body text and unknown tokens are skipped.
"""

import copy
import logging
import re
from collections.abc import Sequence
from typing import Any, TypedDict
from urllib.parse import unquote

import yaml
from markdown_it.token import Token

from .config import DEFAULT_TITLE
from .markdown_marks import build_markdown_parser
from .nodes import Node
from .pending import rehydrate_pending_state
from .utils import generate_node_id

logger = logging.getLogger(__name__)

FRONTMATTER_PATTERN = re.compile(
    r"\A---[ \t]*\r?\n(.*?)(?:\r?\n)?^---[ \t]*(?:\r?\n|\Z)",
    re.DOTALL | re.MULTILINE,
)
CHECKBOX_PATTERN = re.compile(r"^\[([ xX])\]\s?")
BREAK_PATTERN = re.compile(r"^<br\s*/?>$", re.IGNORECASE)
EMPTY_PARAGRAPH_SENTINEL = "<!-- -->"

# Paired inline tokens and the mark each one toggles.
MARK_TOKENS = {
    "strong": "bold",
    "em": "italic",
    "s": "strike",
    "ins": "underline",
    "mark": "highlight",
    "sub": "subscript",
    "sup": "superscript",
}

_md = build_markdown_parser()


class ParsedMarkdown(TypedDict):
    """Result of parsing a markdown document."""

    title: str
    metadata: dict[str, Any]
    document: Node


def split_frontmatter(markdown: str) -> tuple[dict[str, Any], str]:
    """Split a leading ``---`` block from the markdown body.

    The block is parsed as YAML, which also accepts the minified JSON the
    serializer writes. If the block is malformed or not a mapping, it is
    treated as absent and the whole input is returned as body.

    Args:
        markdown: Raw document text.

    Returns:
        Tuple of (frontmatter mapping, body text).

    """
    match = FRONTMATTER_PATTERN.match(markdown)
    if not match:
        return {}, markdown

    try:
        data = yaml.safe_load(match.group(1)) or {}
    except yaml.YAMLError as exc:
        logger.warning("Failed to parse frontmatter: %s", exc)
        return {}, markdown

    if not isinstance(data, dict):
        logger.warning("Ignoring frontmatter of type %s", type(data).__name__)
        return {}, markdown

    return data, markdown[match.end() :]


def markdown_to_tiptap(markdown: str) -> ParsedMarkdown:
    """Parse a full document into title, metadata and block tree.

    Frontmatter ``pending`` entries are reattached to leaf blocks and removed
    from the returned metadata.
    """
    data, body = split_frontmatter(markdown)
    title = data.get("title")

    document: Node = {"type": "doc", "content": markdown_to_nodes(body)}

    if data.get("pending"):
        rehydrate_pending_state(document, data["pending"])

    metadata = dict(data)
    metadata.pop("pending", None)

    return {
        "title": str(title) if title else DEFAULT_TITLE,
        "metadata": metadata,
        "document": document,
    }


def markdown_to_nodes(markdown: str) -> list[Node]:
    """Parse a markdown fragment (no frontmatter) into block nodes."""
    nodes = tokens_to_nodes(_md.parse(markdown))
    return nodes or [_paragraph([])]


# ---- Token tree walker ----


def find_closing_token(tokens: Sequence[Token], start: int, kind: str) -> int:
    """Return the index of the close token matching ``tokens[start]``.

    Nested constructs of the same kind are skipped by counting opens and
    closes. Falls back to the last index when the stream is unbalanced.
    """
    depth = 0
    for index in range(start, len(tokens)):
        token_type = tokens[index].type
        if token_type == f"{kind}_open":
            depth += 1
        elif token_type == f"{kind}_close":
            depth -= 1
            if depth == 0:
                return index
    return len(tokens) - 1


def _paragraph(content: list[Node]) -> Node:
    return {"type": "paragraph", "attrs": {"id": generate_node_id()}, "content": content}


def _inline_after(tokens: Sequence[Token], index: int) -> list[Node]:
    """Convert the inline token following ``tokens[index]``, if any."""
    if index + 1 < len(tokens) and tokens[index + 1].type == "inline":
        return inline_tokens_to_nodes(tokens[index + 1].children or [])
    return []


def tokens_to_nodes(tokens: Sequence[Token]) -> list[Node]:  # noqa: C901, PLR0912, PLR0915
    """Convert a flat block-level token stream into block nodes."""
    nodes: list[Node] = []
    i = 0

    while i < len(tokens):
        token = tokens[i]
        token_type = token.type

        if token_type == "heading_open":
            try:
                level = int(token.tag[1:])
            except ValueError:
                level = 1
            content = _inline_after(tokens, i)
            nodes.append(
                {
                    "type": "heading",
                    "attrs": {"id": generate_node_id(), "level": level},
                    "content": content,
                },
            )
            i = find_closing_token(tokens, i, "heading") + 1
        elif token_type == "paragraph_open":
            content = _inline_after(tokens, i)
            # A paragraph holding only an image is a block-level image.
            if len(content) == 1 and content[0]["type"] == "image":
                nodes.append(content[0])
            else:
                nodes.append(_paragraph(content))
            i = find_closing_token(tokens, i, "paragraph") + 1
        elif token_type == "bullet_list_open":
            end = find_closing_token(tokens, i, "bullet_list")
            list_node = {
                "type": "bulletList",
                "attrs": {"id": generate_node_id()},
                "content": _parse_list_items(tokens[i + 1 : end]),
            }
            nodes.append(_try_convert_to_task_list(list_node) or list_node)
            i = end + 1
        elif token_type == "ordered_list_open":
            end = find_closing_token(tokens, i, "ordered_list")
            attrs: dict[str, Any] = {"id": generate_node_id()}
            start = token.attrGet("start")
            if start is not None and int(start) != 1:
                attrs["start"] = int(start)
            nodes.append(
                {
                    "type": "orderedList",
                    "attrs": attrs,
                    "content": _parse_list_items(tokens[i + 1 : end]),
                },
            )
            i = end + 1
        elif token_type == "blockquote_open":
            end = find_closing_token(tokens, i, "blockquote")
            nodes.append(
                {
                    "type": "blockquote",
                    "attrs": {"id": generate_node_id()},
                    "content": tokens_to_nodes(tokens[i + 1 : end]),
                },
            )
            i = end + 1
        elif token_type in {"fence", "code_block"}:
            language = (token.info or "").strip()
            text = token.content.removesuffix("\n")
            code_attrs: dict[str, Any] = {"id": generate_node_id()}
            if language:
                code_attrs["language"] = language
            nodes.append(
                {
                    "type": "codeBlock",
                    "attrs": code_attrs,
                    "content": [{"type": "text", "text": text}] if text else [],
                },
            )
            i += 1
        elif token_type == "hr":
            nodes.append({"type": "horizontalRule", "attrs": {"id": generate_node_id()}})
            i += 1
        elif token_type == "html_block":
            html = token.content.strip()
            if html == EMPTY_PARAGRAPH_SENTINEL:
                nodes.append(_paragraph([]))
            elif BREAK_PATTERN.match(html):
                # A lone ``<br>`` line is an HTML block, not paragraph text.
                nodes.append(_paragraph([{"type": "hardBreak"}]))
            i += 1
        elif token_type == "table_open":
            end = find_closing_token(tokens, i, "table")
            nodes.append(_parse_table_tokens(tokens[i + 1 : end]))
            i = end + 1
        else:
            i += 1

    return nodes


def _parse_list_items(tokens: Sequence[Token]) -> list[Node]:
    items: list[Node] = []
    i = 0
    while i < len(tokens):
        if tokens[i].type == "list_item_open":
            end = find_closing_token(tokens, i, "list_item")
            items.append(
                {
                    "type": "listItem",
                    "attrs": {"id": generate_node_id()},
                    "content": tokens_to_nodes(tokens[i + 1 : end]),
                },
            )
            i = end + 1
        else:
            i += 1
    return items


def _try_convert_to_task_list(bullet_list: Node) -> Node | None:
    """Convert a bullet list to a task list if every item starts with a checkbox.

    Returns None (leaving the bullet list as-is) when any item lacks the
    ``[ ]`` / ``[x]`` prefix.
    """
    items = bullet_list["content"]
    if not items:
        return None

    task_items: list[Node] = []
    for item in items:
        children = item.get("content") or []
        first_child = children[0] if children else None
        if not first_child or first_child["type"] != "paragraph":
            return None
        inline = first_child.get("content") or []
        first_text = inline[0] if inline else None
        if not first_text or first_text["type"] != "text":
            return None
        match = CHECKBOX_PATTERN.match(first_text["text"])
        if not match:
            return None

        remaining = first_text["text"][match.end() :]
        new_inline = list(inline)
        if remaining:
            new_inline[0] = {**first_text, "text": remaining}
        else:
            new_inline.pop(0)

        task_items.append(
            {
                "type": "taskItem",
                "attrs": {"id": generate_node_id(), "checked": match.group(1) != " "},
                "content": [{**first_child, "content": new_inline}, *children[1:]],
            },
        )

    return {"type": "taskList", "attrs": {"id": generate_node_id()}, "content": task_items}


def _parse_table_tokens(tokens: Sequence[Token]) -> Node:
    rows: list[Node] = []
    i = 0
    while i < len(tokens):
        if tokens[i].type != "tr_open":
            i += 1
            continue

        row_end = find_closing_token(tokens, i, "tr")
        cells: list[Node] = []
        j = i + 1
        while j < row_end:
            cell_token = tokens[j]
            if cell_token.type in {"th_open", "td_open"}:
                kind = cell_token.type.removesuffix("_open")
                cell_end = find_closing_token(tokens, j, kind)
                cells.append(
                    {
                        "type": "tableHeader" if kind == "th" else "tableCell",
                        "attrs": {"id": generate_node_id()},
                        "content": [_paragraph(_inline_after(tokens, j))],
                    },
                )
                j = cell_end + 1
            else:
                j += 1

        rows.append(
            {"type": "tableRow", "attrs": {"id": generate_node_id()}, "content": cells},
        )
        i = row_end + 1

    return {"type": "table", "attrs": {"id": generate_node_id()}, "content": rows}


# ---- Inline content ----


def _mark_key(mark: Node) -> str:
    if mark["type"] == "link":
        return f"link:{mark['attrs'].get('href')}"
    return mark["type"]


def deduplicate_marks(marks: Sequence[Node]) -> list[Node]:
    """Drop repeated marks (links compare by href), keeping first occurrences."""
    seen: set[str] = set()
    result = []
    for mark in marks:
        key = _mark_key(mark)
        if key in seen:
            continue
        seen.add(key)
        result.append(mark)
    return result


def _pop_mark(stack: list[Node], mark_type: str) -> None:
    """Remove the most recent mark of ``mark_type``; closes need not be LIFO."""
    for index in range(len(stack) - 1, -1, -1):
        if stack[index]["type"] == mark_type:
            del stack[index]
            return


def _append_text(nodes: list[Node], text: str, marks: list[Node]) -> None:
    """Append a text node, merging with the previous one when marks match."""
    if not text:
        return
    previous = nodes[-1] if nodes else None
    if (
        previous is not None
        and previous["type"] == "text"
        and previous.get("marks", []) == marks
    ):
        previous["text"] += text
        return
    node: Node = {"type": "text", "text": text}
    if marks:
        node["marks"] = copy.deepcopy(marks)
    nodes.append(node)


def inline_tokens_to_nodes(tokens: Sequence[Token]) -> list[Node]:  # noqa: C901, PLR0912
    """Convert inline tokens to text/hardBreak/image nodes with marks."""
    nodes: list[Node] = []
    stack: list[Node] = []

    for token in tokens:
        token_type = token.type
        base, _, suffix = token_type.rpartition("_")

        if token_type == "text":
            _append_text(nodes, token.content, deduplicate_marks(stack))
        elif token_type == "code_inline":
            _append_text(
                nodes,
                token.content,
                deduplicate_marks([*stack, {"type": "code"}]),
            )
        elif base in MARK_TOKENS and suffix in {"open", "close"}:
            if suffix == "open":
                stack.append({"type": MARK_TOKENS[base]})
            else:
                _pop_mark(stack, MARK_TOKENS[base])
        elif token_type == "link_open":
            href = unquote(str(token.attrGet("href") or ""))
            stack.append({"type": "link", "attrs": {"href": href}})
        elif token_type == "link_close":
            _pop_mark(stack, "link")
        elif token_type == "image":
            nodes.append(
                {
                    "type": "image",
                    "attrs": {
                        "id": generate_node_id(),
                        "src": unquote(str(token.attrGet("src") or "")),
                        "alt": token.content or str(token.attrGet("alt") or ""),
                    },
                },
            )
        elif token_type == "html_inline":
            if BREAK_PATTERN.match(token.content.strip()):
                nodes.append({"type": "hardBreak"})
        elif token_type == "hardbreak":
            nodes.append({"type": "hardBreak"})
        elif token_type == "softbreak":
            _append_text(nodes, " ", deduplicate_marks(stack))

    return nodes
