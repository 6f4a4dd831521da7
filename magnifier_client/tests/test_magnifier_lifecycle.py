from __future__ import annotations

import logging

import pytest

from magnifier_client.capture_timers import PAGE_TIMER, REGION_TIMER
from magnifier_client.config import ActivationMode, MagnifierConfig
from magnifier_client.draw_engine import ERROR_TEXT, LOADING_TEXT, FrameOutcome
from magnifier_client.logging_utils import LOGGER_NAME
from magnifier_client.magnifier import Magnifier
from magnifier_client.page_host import ElementRole, EventKind, Rect
from magnifier_client.raster import RasterizerLoadResult, SnapshotRaster, StaticRasterizerLoader


@pytest.fixture
def client_log(caplog):
    logger = logging.getLogger(LOGGER_NAME)
    logger.addHandler(caplog.handler)
    caplog.set_level(logging.DEBUG, logger=LOGGER_NAME)
    try:
        yield caplog
    finally:
        logger.removeHandler(caplog.handler)


def _build(host, rasterizer=None, **options) -> Magnifier:
    loader = StaticRasterizerLoader(rasterizer) if rasterizer is not None else None
    return Magnifier(host, options, rasterizer_loader=loader)


def test_drag_scenario_from_loading_to_magnified_page(host, rasterizer):
    magnifier = _build(host, rasterizer, size=200, zoom=2)
    overlay = host.overlays[0]
    assert overlay.size == 200
    assert overlay.position == (20, 20)
    assert overlay.visible is False
    # Document already loaded: first snapshot requested immediately.
    assert len(rasterizer.calls) == 1

    host.emit(EventKind.POINTER_DOWN, 100, 100)
    assert overlay.visible is True
    assert magnifier.timers.has_timer(PAGE_TIMER)

    host.run_frame()
    assert overlay.frames[-1].placeholders() == [LOADING_TEXT]

    page = SnapshotRaster(image="page", width=800, height=600)
    rasterizer.complete(0, page)
    host.run_frame()
    assert overlay.frames[-1].blits() == [("blit", page, 50, 50, 100, 100)]
    assert magnifier.engine.last_outcome is FrameOutcome.PAGE

    host.emit(EventKind.POINTER_UP, 100, 100)
    assert overlay.visible is False
    assert not magnifier.timers.running


def test_frames_keep_running_while_idle(host, rasterizer):
    magnifier = _build(host, rasterizer)
    host.run_frame()
    host.run_frame()
    assert len(host.frames) == 1
    assert magnifier.engine.frame_pending


def test_periodic_capture_skips_in_flight_requests(host, rasterizer):
    magnifier = _build(host, rasterizer)
    host.emit(EventKind.POINTER_DOWN, 10, 10)

    host.run_timers_with_delay(16)
    # The initial capture is still pending, so the tick issues nothing.
    assert len(rasterizer.calls) == 1
    assert magnifier.timers.has_timer(PAGE_TIMER)

    rasterizer.complete(0, SnapshotRaster(image="p", width=800, height=600))
    host.run_timers_with_delay(16)
    assert len(rasterizer.calls) == 2


def test_move_mode_leave_hides_and_reentry_resumes(host, rasterizer):
    magnifier = _build(host, rasterizer, activationMode="move")
    overlay = host.overlays[0]
    assert magnifier.config.activation_mode is ActivationMode.MOVE

    host.emit(EventKind.POINTER_MOVE, 30, 40)
    assert overlay.visible
    page_handle = next(h for h, (delay, _cb) in host.timers.items() if delay == 16)

    host.emit(EventKind.POINTER_LEAVE)
    assert not overlay.visible
    assert page_handle in host.cancelled
    assert not magnifier.timers.running

    host.emit(EventKind.POINTER_MOVE, 35, 45)
    assert overlay.visible
    assert magnifier.timers.running
    assert (magnifier.state.x, magnifier.state.y) == (35, 45)


def test_region_timer_runs_only_when_svg_present(host, rasterizer, fakes):
    svg_target = object()
    host.elements[ElementRole.DYNAMIC_SVG] = fakes.Element(Rect(100, 100, 240, 240), target=svg_target)
    magnifier = _build(host, rasterizer, updateFrequency={"regionSnapshotIntervalMs": 40})

    host.emit(EventKind.POINTER_DOWN, 150, 150)
    assert magnifier.timers.has_timer(REGION_TIMER)

    host.run_timers_with_delay(40)
    targets = [target for target, _options, _future in rasterizer.calls]
    assert svg_target in targets


def test_no_region_timer_without_svg(host, rasterizer):
    magnifier = _build(host, rasterizer)
    host.emit(EventKind.POINTER_DOWN, 150, 150)
    assert magnifier.timers.has_timer(PAGE_TIMER)
    assert not magnifier.timers.has_timer(REGION_TIMER)


def test_initial_snapshot_waits_for_load(fakes, rasterizer):
    host = fakes.Host(loaded=False)
    _build(host, rasterizer)
    assert rasterizer.calls == []

    host.fire_loaded()
    assert host.timer_delays() == [100]
    host.run_timers_with_delay(100)
    assert len(rasterizer.calls) == 1


def test_resize_and_scroll_are_debounced(host, rasterizer):
    _build(host, rasterizer)
    rasterizer.complete(0, SnapshotRaster(image="p", width=800, height=600))

    host.emit(EventKind.RESIZE)
    host.emit(EventKind.SCROLL)
    host.emit(EventKind.RESIZE)

    assert host.timer_delays() == [150]
    assert len(host.cancelled) == 2
    host.run_timers_with_delay(150)
    assert len(rasterizer.calls) == 2


def test_missing_rasterizer_draws_placeholders_only(host, client_log):
    magnifier = _build(host)
    overlay = host.overlays[0]

    assert not magnifier.rasterizer_status.available
    assert "Failed to load rasterizer" in client_log.text

    host.emit(EventKind.POINTER_DOWN, 100, 100)
    host.run_frame()
    host.run_timers_with_delay(16)
    host.run_frame()
    assert overlay.visible
    assert all(frame.placeholders() == [LOADING_TEXT] for frame in overlay.frames)


def test_loader_exception_is_reported_as_unavailable(host, client_log):
    class BrokenLoader:
        def load(self) -> RasterizerLoadResult:
            raise ImportError("rasterizer module missing")

    magnifier = Magnifier(host, rasterizer_loader=BrokenLoader())
    assert magnifier.rasterizer_status.reason == "rasterizer module missing"
    assert "rasterizer module missing" in client_log.text


def test_draw_failure_renders_error_placeholder_and_loop_continues(host, rasterizer, fakes):
    magnifier = _build(host, rasterizer)
    overlay = host.overlays[0]
    rasterizer.complete(0, SnapshotRaster(image="p", width=800, height=600))
    overlay.painter_factory = fakes.FailingPainter

    host.run_frame()
    assert overlay.frames[-1].placeholders() == [ERROR_TEXT]
    assert magnifier.engine.frame_pending

    overlay.painter_factory = fakes.Painter
    host.run_frame()
    assert overlay.frames[-1].blits()


def test_destroy_releases_everything_once(host, rasterizer):
    magnifier = _build(host, rasterizer)
    overlay = host.overlays[0]
    host.emit(EventKind.POINTER_DOWN, 10, 10)
    pending_frames = list(host.frames)

    magnifier.destroy()

    assert magnifier.destroyed
    assert overlay.removed
    assert magnifier.overlay is None
    assert host.listeners == {}
    assert host.timers == {}
    assert host.frames == {}
    assert host.cancelled_frames == pending_frames
    assert magnifier.cache.disposed

    cancelled_before = list(host.cancelled)
    magnifier.destroy()
    assert host.cancelled == cancelled_before


def test_late_snapshot_after_destroy_is_ignored(host, rasterizer):
    magnifier = _build(host, rasterizer)
    magnifier.destroy()
    rasterizer.complete(0, SnapshotRaster(image="late", width=800, height=600))
    assert magnifier.cache.page_raster is None
    assert host.frames == {}


def test_explicit_config_overrides_options(host, rasterizer):
    config = MagnifierConfig(size=120, zoom=3)
    magnifier = Magnifier(host, {"size": 999}, config=config, rasterizer_loader=StaticRasterizerLoader(rasterizer))
    assert magnifier.config is config
    assert host.overlays[0].size == 120
