"""Map a pointer position to the source rectangle sampled into the overlay.

All rectangles are centered on the pointer and clamped per axis to
``[0, max(0, source_dimension - side)]``. Sampling is nearest-neighbour; that is
a painter setting, not something computed here.
"""
from __future__ import annotations

from dataclasses import dataclass

from magnifier_client.page_host import Rect


@dataclass(frozen=True)
class SourceRect:
    x: float
    y: float
    width: float
    height: float


def clamp_origin(center: float, side: float, extent: float) -> float:
    upper = max(0.0, extent - side)
    return max(0.0, min(center - side / 2.0, upper))


def map_direct(pointer_x: float, pointer_y: float, element: Rect, source_size: float) -> SourceRect:
    """Element-local rectangle for sampling a live element's pixels."""
    local_x = pointer_x - element.left
    local_y = pointer_y - element.top
    return SourceRect(
        x=clamp_origin(local_x, source_size, element.width),
        y=clamp_origin(local_y, source_size, element.height),
        width=source_size,
        height=source_size,
    )


def map_region(
    pointer_x: float,
    pointer_y: float,
    element: Rect,
    raster_width: float,
    raster_height: float,
    source_size: float,
) -> SourceRect:
    """Rectangle inside a region raster captured at a higher scale than its element."""
    scale = raster_width / element.width if element.width > 0 else 1.0
    local_x = (pointer_x - element.left) * scale
    local_y = (pointer_y - element.top) * scale
    side = source_size * scale
    return SourceRect(
        x=clamp_origin(local_x, side, raster_width),
        y=clamp_origin(local_y, side, raster_height),
        width=side,
        height=side,
    )


def map_page(
    pointer_x: float,
    pointer_y: float,
    scroll_x: float,
    scroll_y: float,
    document_width: float,
    document_height: float,
    raster_width: float,
    raster_height: float,
    source_size: float,
) -> SourceRect:
    """Rectangle inside the full-page raster, which is in document space."""
    scale_x = raster_width / document_width if document_width > 0 else 1.0
    scale_y = raster_height / document_height if document_height > 0 else 1.0
    world_x = (scroll_x + pointer_x) * scale_x
    world_y = (scroll_y + pointer_y) * scale_y
    side_x = source_size * scale_x
    side_y = source_size * scale_y
    # Whole-pixel origins keep the nearest-neighbour grid stable while panning.
    return SourceRect(
        x=max(0.0, min(float(round(world_x - side_x / 2.0)), max(0.0, raster_width - side_x))),
        y=max(0.0, min(float(round(world_y - side_y / 2.0)), max(0.0, raster_height - side_y))),
        width=side_x,
        height=side_y,
    )
