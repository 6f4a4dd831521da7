"""Single-flight cache for the full-page raster and the dynamic SVG region raster."""
from __future__ import annotations

import logging
from concurrent.futures import Future
from typing import Any, Callable, Optional

from magnifier_client.color_sanitizer import sanitize_document
from magnifier_client.logging_utils import LOGGER_NAME
from magnifier_client.page_host import ElementRole, PageHost
from magnifier_client.raster import CaptureOptions, Rasterizer, SnapshotRaster

_LOGGER = logging.getLogger(LOGGER_NAME)

PAGE = "page"
REGION = "region"


class SnapshotCache:
    """Owns at most one page raster and one region raster.

    Captures are fire-and-forget: ``refresh_*`` issues a rasterizer call and
    returns immediately, and the completion callback swaps the cached raster in
    as a whole value. While a capture of one kind is pending, further requests
    for that kind are no-ops. Results that arrive after :meth:`dispose` are
    dropped.
    """

    def __init__(
        self,
        host: PageHost,
        *,
        region_scale: float = 2.0,
        on_clone: Optional[Callable[[Any], object]] = sanitize_document,
        on_updated: Optional[Callable[[str], None]] = None,
    ) -> None:
        self._host = host
        self._region_scale = max(1.0, float(region_scale))
        self._on_clone = on_clone
        self._on_updated = on_updated
        self._rasterizer: Optional[Rasterizer] = None
        self._page_raster: Optional[SnapshotRaster] = None
        self._region_raster: Optional[SnapshotRaster] = None
        self._capturing = {PAGE: False, REGION: False}
        self._disposed = False

    @property
    def page_raster(self) -> Optional[SnapshotRaster]:
        return self._page_raster

    @property
    def region_raster(self) -> Optional[SnapshotRaster]:
        return self._region_raster

    @property
    def capturing_page(self) -> bool:
        return self._capturing[PAGE]

    @property
    def capturing_region(self) -> bool:
        return self._capturing[REGION]

    @property
    def has_rasterizer(self) -> bool:
        return self._rasterizer is not None

    @property
    def disposed(self) -> bool:
        return self._disposed

    def set_rasterizer(self, rasterizer: Optional[Rasterizer]) -> None:
        self._rasterizer = rasterizer

    def refresh_page(self) -> bool:
        """Request a full-document capture; returns True when a capture was issued."""
        return self._issue(
            PAGE,
            lambda: self._host.document_root(),
            CaptureOptions(scale=1.0, on_clone=self._on_clone),
        )

    def refresh_region(self) -> bool:
        """Request a capture of the dynamic SVG element at the region scale."""
        return self._issue(
            REGION,
            self._region_target,
            CaptureOptions(scale=self._region_scale, background=None, on_clone=self._on_clone),
        )

    def dispose(self) -> None:
        self._disposed = True
        self._page_raster = None
        self._region_raster = None
        self._rasterizer = None
        self._on_updated = None

    def _region_target(self) -> Any:
        element = self._host.find_element(ElementRole.DYNAMIC_SVG)
        return None if element is None else element.target

    def _issue(self, kind: str, target_fn: Callable[[], Any], options: CaptureOptions) -> bool:
        if self._disposed or self._capturing[kind]:
            return False
        rasterizer = self._rasterizer
        if rasterizer is None:
            return False
        try:
            target = target_fn()
        except Exception as exc:
            _LOGGER.warning("Unable to resolve %s capture target: %s", kind, exc)
            return False
        if target is None:
            return False
        self._capturing[kind] = True
        try:
            future = rasterizer.capture(target, options)
        except Exception as exc:
            self._capturing[kind] = False
            _LOGGER.warning("%s snapshot failed to start: %s", kind.capitalize(), exc)
            return False
        future.add_done_callback(lambda done: self._complete(kind, done))
        return True

    def _complete(self, kind: str, future: "Future[SnapshotRaster]") -> None:
        accepted = False
        try:
            if future.cancelled():
                _LOGGER.debug("%s snapshot cancelled", kind.capitalize())
                return
            error = future.exception()
            if error is not None:
                _LOGGER.warning("%s snapshot failed: %s", kind.capitalize(), error)
                return
            raster = future.result()
            if self._disposed:
                _LOGGER.debug("Discarding %s snapshot that completed after teardown", kind)
                return
            if raster is None or raster.width <= 0 or raster.height <= 0:
                _LOGGER.warning("%s snapshot produced an empty raster; keeping previous", kind.capitalize())
                return
            if kind == PAGE:
                self._page_raster = raster
            else:
                self._region_raster = raster
            accepted = True
        except Exception as exc:
            _LOGGER.warning("%s snapshot completion failed: %s", kind.capitalize(), exc)
        finally:
            self._capturing[kind] = False
        if accepted and self._on_updated is not None:
            try:
                self._on_updated(kind)
            except Exception as exc:
                _LOGGER.debug("Snapshot update callback failed: %s", exc)
