from __future__ import annotations

from pathlib import Path

from icecream.content.registry import ContentRegistry, load_content


_CONTENT: ContentRegistry | None = None


def init_content(*, project_root: Path) -> ContentRegistry:
    """Load content once and cache it.

    Safe to call multiple times; subsequent calls return the already loaded instance.
    """

    global _CONTENT
    if _CONTENT is None:
        _CONTENT = load_content(root=project_root)
    return _CONTENT


def reset_content_for_tests() -> None:
    """Drop the cached registry so tests can load from fixture directories."""

    global _CONTENT
    _CONTENT = None


def get_content() -> ContentRegistry:
    if _CONTENT is None:
        raise RuntimeError("Content not initialized. Call init_content() at startup.")
    return _CONTENT
