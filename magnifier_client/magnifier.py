"""Magnifier instance: wires config, pointer state, snapshots and timers to a page host."""
from __future__ import annotations

import logging
from typing import Any, Mapping, Optional

from magnifier_client.activation import ActivationController, PointerState
from magnifier_client.capture_timers import CaptureTimers
from magnifier_client.config import MagnifierConfig
from magnifier_client.draw_engine import DrawEngine
from magnifier_client.logging_utils import LOGGER_NAME, OnceLogger
from magnifier_client.page_host import ElementRole, EventKind, InputEvent, OverlaySurface, PageHost
from magnifier_client.raster import RasterizerLoader, RasterizerLoadResult
from magnifier_client.snapshot_cache import PAGE, REGION, SnapshotCache

_LOGGER = logging.getLogger(LOGGER_NAME)

LAYOUT_DEBOUNCE_KEY = "layout"
INITIAL_SNAPSHOT_KEY = "initial"


class Magnifier:
    """Circular overlay that shows a magnified live view of the content under the pointer.

    Construction creates the overlay surface, resolves the rasterizer, starts the
    redraw loop, attaches input listeners and takes the first page snapshot once
    the document has loaded. :meth:`destroy` reverses all of that.
    """

    def __init__(
        self,
        host: PageHost,
        options: Optional[Mapping[str, Any]] = None,
        *,
        config: Optional[MagnifierConfig] = None,
        rasterizer_loader: Optional[RasterizerLoader] = None,
    ) -> None:
        self.config = config if config is not None else MagnifierConfig.from_options(options)
        self._host = host
        self._destroyed = False
        self._listener_handles: list[object] = []
        self._frame_failures = OnceLogger(_LOGGER)

        self._overlay: Optional[OverlaySurface] = host.create_overlay(
            self.config.size,
            (self.config.position.x, self.config.position.y),
        )
        self._overlay.set_visible(False)

        self.cache = SnapshotCache(
            host,
            region_scale=self.config.region_capture_scale,
            on_updated=self._on_snapshot_updated,
        )
        self.timers = CaptureTimers(
            self.config.update_frequency,
            after=host.after,
            after_cancel=host.cancel,
            logger=_LOGGER.debug,
        )
        self.engine = DrawEngine(host, self.cache, self.config)
        self.activation = ActivationController(
            mode=self.config.activation_mode,
            touch_threshold=self.config.touch_drag_threshold_px,
            set_visible_fn=self._set_overlay_visible,
            start_capture_fn=self._start_periodic_capture,
            stop_capture_fn=self.timers.stop_periodic,
            schedule_recapture_fn=self._schedule_layout_recapture,
            log_fn=_LOGGER.debug,
            failures=OnceLogger(_LOGGER),
        )

        self.rasterizer_status = self._load_rasterizer(rasterizer_loader)
        self.engine.schedule_frame(self._on_frame)
        self._attach_listeners()
        self._schedule_initial_snapshot()
        _LOGGER.debug(
            "Magnifier created: size=%.0f zoom=%.2f mode=%s rasterizer=%s",
            self.config.size,
            self.config.zoom,
            self.config.activation_mode.value,
            "available" if self.rasterizer_status.available else "unavailable",
        )

    @property
    def state(self) -> PointerState:
        return self.activation.state

    @property
    def destroyed(self) -> bool:
        return self._destroyed

    @property
    def overlay(self) -> Optional[OverlaySurface]:
        return self._overlay

    def destroy(self) -> None:
        """Cancel timers, detach listeners, remove the overlay and drop rasters."""
        if self._destroyed:
            return
        self._destroyed = True
        self.timers.cancel_all()
        self.engine.cancel_frame()
        for handle in self._listener_handles:
            try:
                self._host.remove_listener(handle)
            except Exception as exc:
                _LOGGER.debug("Failed to remove input listener: %s", exc)
        self._listener_handles = []
        overlay = self._overlay
        self._overlay = None
        if overlay is not None:
            try:
                overlay.remove()
            except Exception as exc:
                _LOGGER.warning("Failed to remove magnifier overlay: %s", exc)
        self.cache.dispose()
        _LOGGER.debug("Magnifier destroyed")

    def _load_rasterizer(self, loader: Optional[RasterizerLoader]) -> RasterizerLoadResult:
        if loader is None:
            result = RasterizerLoadResult.unavailable("no rasterizer loader configured")
        else:
            try:
                result = loader.load()
            except Exception as exc:
                result = RasterizerLoadResult.unavailable(str(exc) or exc.__class__.__name__)
        if result.available:
            self.cache.set_rasterizer(result.rasterizer)
        else:
            _LOGGER.error("Failed to load rasterizer: %s", result.reason)
            _LOGGER.warning("Magnifier will only draw placeholders until a rasterizer is available")
        return result

    def _attach_listeners(self) -> None:
        for kind in EventKind:
            self._listener_handles.append(self._host.add_listener(kind, self._handle_event))

    def _handle_event(self, event: InputEvent) -> None:
        if self._destroyed:
            return
        try:
            self.activation.handle(event)
        except Exception as exc:
            _LOGGER.warning("Magnifier input handling failed for %s: %s", event.kind.value, exc)

    def _schedule_initial_snapshot(self) -> None:
        if self._host.is_loaded():
            self._refresh_page()
            return

        def _after_load() -> None:
            if self._destroyed:
                return
            self.timers.schedule_debounce(
                INITIAL_SNAPSHOT_KEY,
                self._refresh_page,
                delay_ms=self.config.initial_snapshot_delay_ms,
            )

        self._host.on_loaded(_after_load)

    def _set_overlay_visible(self, visible: bool) -> None:
        if self._overlay is not None:
            self._overlay.set_visible(visible)

    def _start_periodic_capture(self) -> None:
        region_callback = None
        if self.cache.has_rasterizer and self._host.find_element(ElementRole.DYNAMIC_SVG) is not None:
            region_callback = self._refresh_region
        self.timers.start_periodic(self._refresh_page, region_callback)

    def _schedule_layout_recapture(self) -> None:
        self.timers.schedule_debounce(LAYOUT_DEBOUNCE_KEY, self._refresh_page)

    def _refresh_page(self) -> None:
        if self._destroyed:
            return
        try:
            self.cache.refresh_page()
        except Exception as exc:
            _LOGGER.warning("Page snapshot request failed: %s", exc)

    def _refresh_region(self) -> None:
        if self._destroyed:
            return
        try:
            self.cache.refresh_region()
        except Exception as exc:
            _LOGGER.warning("Region snapshot request failed: %s", exc)

    def _on_snapshot_updated(self, kind: str) -> None:
        if self._destroyed:
            return
        if kind == PAGE:
            self.engine.schedule_frame(self._on_frame)
        elif kind == REGION and self._pointer_over_region():
            self.engine.schedule_frame(self._on_frame)

    def _pointer_over_region(self) -> bool:
        element = self._host.find_element(ElementRole.DYNAMIC_SVG)
        if element is None:
            return False
        state = self.activation.state
        return element.bounding_rect().contains(state.x, state.y)

    def _on_frame(self) -> None:
        if self._destroyed or self._overlay is None:
            return
        state = self.activation.state
        try:
            with self._overlay.painter() as painter:
                try:
                    self.engine.draw(painter, state.x, state.y)
                    self._frame_failures.clear("frame")
                except Exception as exc:
                    self._frame_failures.warning("frame", "Magnifier frame failed: %s", exc)
                    self.engine.draw_error(painter)
        except Exception as exc:
            self._frame_failures.warning("surface", "Magnifier surface unavailable: %s", exc)
        finally:
            if not self._destroyed:
                self.engine.schedule_frame(self._on_frame)
