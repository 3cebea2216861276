from __future__ import annotations

from icecream.config import get_settings, project_root
from icecream.content.singleton import init_content


def init_content_for_app() -> None:
    settings = get_settings()
    init_content(project_root=settings.content_root or project_root())
