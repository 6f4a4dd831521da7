from __future__ import annotations

from enum import Enum
from typing import Optional

from magnifier_client.page_host import Rect


class ContentSource(str, Enum):
    DIRECT_CANVAS = "direct_canvas"
    SVG_REGION = "svg_region"
    FULL_PAGE = "full_page"


def detect_source(
    pointer_x: float,
    pointer_y: float,
    canvas_rect: Optional[Rect],
    svg_rect: Optional[Rect],
) -> ContentSource:
    """Pick the content source under the pointer; canvas wins over SVG, SVG over the page."""
    if canvas_rect is not None and canvas_rect.contains(pointer_x, pointer_y):
        return ContentSource.DIRECT_CANVAS
    if svg_rect is not None and svg_rect.contains(pointer_x, pointer_y):
        return ContentSource.SVG_REGION
    return ContentSource.FULL_PAGE
