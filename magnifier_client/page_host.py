"""Page access abstraction used by the magnifier engine.

The engine never talks to a toolkit directly; a host supplies element lookup,
scroll/viewport geometry, frame and timer scheduling, input listeners and the
overlay surface. ``magnifier_client.qt_host`` is the PyQt6 implementation; tests
use in-memory fakes.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, ContextManager, Optional, Protocol, Tuple

from magnifier_client.raster import SnapshotRaster


class ElementRole(str, Enum):
    DYNAMIC_CANVAS = "dynamicCanvas"
    DYNAMIC_SVG = "dynamicSvg"


class EventKind(str, Enum):
    POINTER_DOWN = "pointer_down"
    POINTER_MOVE = "pointer_move"
    POINTER_UP = "pointer_up"
    POINTER_LEAVE = "pointer_leave"
    TOUCH_START = "touch_start"
    TOUCH_MOVE = "touch_move"
    TOUCH_END = "touch_end"
    RESIZE = "resize"
    SCROLL = "scroll"


@dataclass(frozen=True)
class InputEvent:
    kind: EventKind
    x: float = 0.0
    y: float = 0.0


@dataclass(frozen=True)
class Rect:
    """Axis-aligned rectangle in viewport coordinates."""

    left: float
    top: float
    width: float
    height: float

    @property
    def right(self) -> float:
        return self.left + self.width

    @property
    def bottom(self) -> float:
        return self.top + self.height

    def contains(self, x: float, y: float) -> bool:
        # Edges are inclusive on all four sides.
        return self.left <= x <= self.right and self.top <= y <= self.bottom


class PageElement(Protocol):
    @property
    def target(self) -> Any: ...

    def bounding_rect(self) -> Rect: ...

    def is_pixel_source(self) -> bool: ...

    def live_raster(self) -> SnapshotRaster: ...


class SurfacePainter(Protocol):
    def clear(self, background: str) -> None: ...

    def blit(self, raster: SnapshotRaster, x: float, y: float, width: float, height: float) -> None: ...

    def placeholder(self, text: str, *, background: str, foreground: str, point_size: int) -> None: ...


class OverlaySurface(Protocol):
    def painter(self) -> ContextManager[SurfacePainter]: ...

    def set_visible(self, visible: bool) -> None: ...

    def is_visible(self) -> bool: ...

    def remove(self) -> None: ...


InputListener = Callable[[InputEvent], None]


class PageHost(Protocol):
    def find_element(self, role: ElementRole) -> Optional[PageElement]: ...

    def scroll_offset(self) -> Tuple[float, float]: ...

    def viewport_size(self) -> Tuple[float, float]: ...

    def document_size(self) -> Tuple[float, float]: ...

    def document_root(self) -> Any: ...

    def is_loaded(self) -> bool: ...

    def on_loaded(self, callback: Callable[[], None]) -> None: ...

    def request_frame(self, callback: Callable[[], None]) -> object: ...

    def cancel_frame(self, handle: object) -> None: ...

    def after(self, delay_ms: int, callback: Callable[[], None]) -> object: ...

    def cancel(self, handle: object) -> None: ...

    def add_listener(self, kind: EventKind, listener: InputListener) -> object: ...

    def remove_listener(self, handle: object) -> None: ...

    def create_overlay(self, size: float, position: Tuple[float, float]) -> OverlaySurface: ...
