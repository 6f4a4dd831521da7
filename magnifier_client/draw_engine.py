"""Per-frame source selection and blit into the overlay surface."""
from __future__ import annotations

import logging
from enum import Enum
from typing import Callable, Optional, Tuple

from magnifier_client.config import MagnifierConfig
from magnifier_client.content_detector import ContentSource, detect_source
from magnifier_client.coordinate_mapper import SourceRect, map_direct, map_page, map_region
from magnifier_client.logging_utils import LOGGER_NAME, OnceLogger
from magnifier_client.page_host import ElementRole, PageElement, PageHost, Rect, SurfacePainter
from magnifier_client.raster import SnapshotRaster
from magnifier_client.snapshot_cache import SnapshotCache

_LOGGER = logging.getLogger(LOGGER_NAME)

BACKGROUND_COLOR = "#ffffff"
LOADING_TEXT = "Loading..."
LOADING_BACKGROUND = "#e8e8e8"
LOADING_FOREGROUND = "#666666"
LOADING_POINT_SIZE = 11
ERROR_TEXT = "Draw failed"
ERROR_BACKGROUND = "#f7f7f7"
ERROR_FOREGROUND = "#aa0000"
ERROR_POINT_SIZE = 12


class FrameOutcome(str, Enum):
    DIRECT = "direct"
    REGION = "region"
    PAGE = "page"
    LOADING = "loading"
    ERROR = "error"


class DrawEngine:
    """Chooses a content source for the pointer and blits the magnified rectangle.

    The engine also owns the pending-frame token: at most one frame is
    scheduled with the host at a time, and the token is released as soon as
    that frame fires so the next one can be requested.
    """

    def __init__(self, host: PageHost, cache: SnapshotCache, config: MagnifierConfig) -> None:
        self._host = host
        self._cache = cache
        self._config = config
        self._pending_frame: object | None = None
        self._failures = OnceLogger(_LOGGER)
        self.last_outcome: Optional[FrameOutcome] = None
        self.last_source_rect: Optional[SourceRect] = None

    @property
    def frame_pending(self) -> bool:
        return self._pending_frame is not None

    def schedule_frame(self, callback: Callable[[], None]) -> bool:
        if self._pending_frame is not None:
            return False
        self._pending_frame = self._host.request_frame(lambda: self._run_frame(callback))
        return True

    def cancel_frame(self) -> None:
        handle = self._pending_frame
        self._pending_frame = None
        if handle is not None:
            try:
                self._host.cancel_frame(handle)
            except Exception as exc:
                _LOGGER.debug("Failed to cancel pending frame: %s", exc)

    def _run_frame(self, callback: Callable[[], None]) -> None:
        self._pending_frame = None
        callback()

    def draw(self, painter: SurfacePainter, pointer_x: float, pointer_y: float) -> FrameOutcome:
        painter.clear(BACKGROUND_COLOR)
        self.last_source_rect = None

        canvas_element, canvas_rect = self._lookup(ElementRole.DYNAMIC_CANVAS)
        svg_element, svg_rect = self._lookup(ElementRole.DYNAMIC_SVG)
        source = detect_source(pointer_x, pointer_y, canvas_rect, svg_rect)

        if source is ContentSource.DIRECT_CANVAS:
            if canvas_element is not None and canvas_rect is not None and self._is_pixel_source(canvas_element):
                outcome = self._guarded(
                    "canvas",
                    painter,
                    lambda: self._draw_direct(painter, canvas_element, canvas_rect, pointer_x, pointer_y),
                )
                return self._finish(outcome)
            source = detect_source(pointer_x, pointer_y, None, svg_rect)

        region_raster = self._cache.region_raster
        if source is ContentSource.SVG_REGION and region_raster is not None and svg_rect is not None:
            outcome = self._guarded(
                "region",
                painter,
                lambda: self._draw_region(painter, region_raster, svg_rect, pointer_x, pointer_y),
            )
            return self._finish(outcome)

        page_raster = self._cache.page_raster
        if page_raster is None:
            painter.placeholder(
                LOADING_TEXT,
                background=LOADING_BACKGROUND,
                foreground=LOADING_FOREGROUND,
                point_size=LOADING_POINT_SIZE,
            )
            return self._finish(FrameOutcome.LOADING)
        outcome = self._guarded(
            "page",
            painter,
            lambda: self._draw_page(painter, page_raster, pointer_x, pointer_y),
        )
        return self._finish(outcome)

    def draw_error(self, painter: SurfacePainter) -> FrameOutcome:
        painter.clear(BACKGROUND_COLOR)
        painter.placeholder(
            ERROR_TEXT,
            background=ERROR_BACKGROUND,
            foreground=ERROR_FOREGROUND,
            point_size=ERROR_POINT_SIZE,
        )
        return self._finish(FrameOutcome.ERROR)

    def _finish(self, outcome: FrameOutcome) -> FrameOutcome:
        self.last_outcome = outcome
        return outcome

    def _lookup(self, role: ElementRole) -> Tuple[Optional[PageElement], Optional[Rect]]:
        try:
            element = self._host.find_element(role)
            if element is None:
                return None, None
            return element, element.bounding_rect()
        except Exception as exc:
            self._failures.warning(f"lookup:{role.value}", "Element lookup for %s failed: %s", role.value, exc)
            return None, None

    @staticmethod
    def _is_pixel_source(element: PageElement) -> bool:
        try:
            return bool(element.is_pixel_source())
        except Exception:
            return False

    def _guarded(self, key: str, painter: SurfacePainter, blit: Callable[[], FrameOutcome]) -> FrameOutcome:
        try:
            outcome = blit()
        except Exception as exc:
            self._failures.warning(key, "Magnifier %s draw failed: %s", key, exc)
            return self.draw_error(painter)
        self._failures.clear(key)
        return outcome

    def _draw_direct(
        self,
        painter: SurfacePainter,
        element: PageElement,
        rect: Rect,
        pointer_x: float,
        pointer_y: float,
    ) -> FrameOutcome:
        source = map_direct(pointer_x, pointer_y, rect, self._config.source_size)
        live = element.live_raster()
        # The live backing store may be denser than the element's layout box.
        scale_x = live.width / rect.width if rect.width > 0 else 1.0
        scale_y = live.height / rect.height if rect.height > 0 else 1.0
        self.last_source_rect = source
        painter.blit(
            live,
            source.x * scale_x,
            source.y * scale_y,
            source.width * scale_x,
            source.height * scale_y,
        )
        return FrameOutcome.DIRECT

    def _draw_region(
        self,
        painter: SurfacePainter,
        raster: SnapshotRaster,
        rect: Rect,
        pointer_x: float,
        pointer_y: float,
    ) -> FrameOutcome:
        source = map_region(pointer_x, pointer_y, rect, raster.width, raster.height, self._config.source_size)
        self.last_source_rect = source
        painter.blit(raster, source.x, source.y, source.width, source.height)
        return FrameOutcome.REGION

    def _draw_page(
        self,
        painter: SurfacePainter,
        raster: SnapshotRaster,
        pointer_x: float,
        pointer_y: float,
    ) -> FrameOutcome:
        scroll_x, scroll_y = self._host.scroll_offset()
        document_width, document_height = self._host.document_size()
        source = map_page(
            pointer_x,
            pointer_y,
            scroll_x,
            scroll_y,
            document_width,
            document_height,
            raster.width,
            raster.height,
            self._config.source_size,
        )
        self.last_source_rect = source
        painter.blit(raster, source.x, source.y, source.width, source.height)
        return FrameOutcome.PAGE
