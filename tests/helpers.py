"""Builders and utilities shared by the test modules."""

from typing import Any

# 2024-01-01T00:00:00Z
BASE_TIME_MS = 1_704_067_200_000


class FakeClock:
    """Millisecond clock advanced manually by tests."""

    def __init__(self, now: int = BASE_TIME_MS) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += int(seconds * 1000)


def strip_ids(node: Any) -> Any:  # noqa: ANN401
    """Return a copy of a node tree without ``attrs.id`` values."""
    if isinstance(node, list):
        return [strip_ids(item) for item in node]
    if not isinstance(node, dict):
        return node
    result = {}
    for key, value in node.items():
        if key == "attrs":
            attrs = {k: v for k, v in value.items() if k != "id"}
            if attrs:
                result[key] = attrs
        else:
            result[key] = strip_ids(value)
    return result


def doc(*blocks: dict[str, Any]) -> dict[str, Any]:
    return {"type": "doc", "content": list(blocks)}


def paragraph(text: str = "", **attrs: Any) -> dict[str, Any]:  # noqa: ANN401
    return {
        "type": "paragraph",
        "attrs": attrs,
        "content": [{"type": "text", "text": text}] if text else [],
    }


def sample_tree() -> list[dict[str, Any]]:
    """Root doc, a container with a doc, and a nested container."""
    return [
        {"type": "doc", "file": "intro.md", "title": "Intro"},
        {
            "type": "container",
            "id": "part1",
            "name": "Part 1",
            "items": [
                {"type": "doc", "file": "ch1.md", "title": "Chapter 1"},
                {
                    "type": "container",
                    "id": "scenes",
                    "name": "Scenes",
                    "items": [{"type": "doc", "file": "scene1.md", "title": "Scene 1"}],
                },
            ],
        },
    ]
