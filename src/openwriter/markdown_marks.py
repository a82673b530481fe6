"""markdown-it configuration for the editor's markdown dialect.

CommonMark plus strikethrough and tables, raw HTML passthrough (used for the
empty-paragraph and hard-break sentinels), and four paired inline markers:

- ``++text++`` -> ``ins_open`` / ``ins_close`` (underline)
- ``==text==`` -> ``mark_open`` / ``mark_close`` (highlight)
- ``~text~``   -> ``sub_open`` / ``sub_close`` (subscript)
- ``^text^``   -> ``sup_open`` / ``sup_close`` (superscript)

Subscript and superscript may not contain bare whitespace; spaces inside
them are written as ``\\ `` and unescaped here.
"""

from collections.abc import Callable

from markdown_it import MarkdownIt
from markdown_it.rules_inline import StateInline
from markdown_it.token import Token

InlineRule = Callable[[StateInline, bool], bool]


def _find_closing(
    state: StateInline,
    start: int,
    marker: str,
    *,
    allow_whitespace: bool,
) -> int | None:
    """Return the offset of the closing ``marker``, or None if there is none."""
    src = state.src
    pos = start
    while pos < state.posMax:
        char = src[pos]
        if char == "\\":
            pos += 2
            continue
        if char.isspace() and not allow_whitespace:
            return None
        if (
            pos > start
            and src.startswith(marker, pos)
            and pos + len(marker) <= state.posMax
            and not src[pos - 1].isspace()
        ):
            return pos
        pos += 1
    return None


def _unescape_spaces(tokens: list[Token]) -> None:
    """Turn ``\\ `` escapes into plain spaces, as markdown-it-sub does."""
    for token in tokens:
        if token.type == "text_special" and token.markup in {"\\ ", "\\\t"}:
            token.content = token.markup[1:]


def _paired_marker_rule(
    marker: str,
    name: str,
    *,
    allow_whitespace: bool,
) -> InlineRule:
    size = len(marker)

    def rule(state: StateInline, silent: bool) -> bool:  # noqa: FBT001
        start = state.pos
        if silent or not state.src.startswith(marker, start):
            return False

        content_start = start + size
        if content_start >= state.posMax:
            return False
        # A doubled marker belongs to another construct (e.g. ``~~`` strike).
        first = state.src[content_start]
        if first == marker[0] or first.isspace():
            return False

        end = _find_closing(
            state,
            content_start,
            marker,
            allow_whitespace=allow_whitespace,
        )
        if end is None:
            return False

        old_pos_max = state.posMax
        state.pos = content_start
        state.posMax = end

        token = state.push(f"{name}_open", name, 1)
        token.markup = marker
        first_inner = len(state.tokens)
        state.md.inline.tokenize(state)
        if not allow_whitespace:
            _unescape_spaces(state.tokens[first_inner:])
        token = state.push(f"{name}_close", name, -1)
        token.markup = marker

        state.pos = end + size
        state.posMax = old_pos_max
        return True

    return rule


def inline_marks_plugin(md: MarkdownIt) -> None:
    """Register underline, highlight, subscript and superscript rules."""
    md.inline.ruler.after(
        "strikethrough",
        "ins",
        _paired_marker_rule("++", "ins", allow_whitespace=True),
    )
    md.inline.ruler.after(
        "ins",
        "mark",
        _paired_marker_rule("==", "mark", allow_whitespace=True),
    )
    md.inline.ruler.after(
        "emphasis",
        "sub",
        _paired_marker_rule("~", "sub", allow_whitespace=False),
    )
    md.inline.ruler.after(
        "sub",
        "sup",
        _paired_marker_rule("^", "sup", allow_whitespace=False),
    )


def build_markdown_parser() -> MarkdownIt:
    """Create the markdown-it instance used for every document parse."""
    md = MarkdownIt("commonmark", {"html": True, "linkify": False})
    md.enable(["strikethrough", "table"])
    md.use(inline_marks_plugin)
    return md
