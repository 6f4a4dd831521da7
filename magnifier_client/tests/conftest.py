from __future__ import annotations

import os
import types
from concurrent.futures import Future
from contextlib import contextmanager
from typing import Any, Callable, Dict, List, Optional, Tuple

import pytest

from magnifier_client.page_host import ElementRole, EventKind, InputEvent, Rect
from magnifier_client.raster import CaptureOptions, SnapshotRaster


def pytest_configure(config):
    config.addinivalue_line("markers", "pyqt_required: test needs a working PyQt6 installation")


def pytest_runtest_setup(item):
    if item.get_closest_marker("pyqt_required"):
        if not os.getenv("PYQT_TESTS"):
            pytest.skip("PYQT_TESTS not set; skipping PyQt-dependent test")


class RecordingPainter:
    def __init__(self) -> None:
        self.ops: List[Tuple[Any, ...]] = []

    def clear(self, background: str) -> None:
        self.ops.append(("clear", background))

    def blit(self, raster: SnapshotRaster, x: float, y: float, width: float, height: float) -> None:
        self.ops.append(("blit", raster, x, y, width, height))

    def placeholder(self, text: str, *, background: str, foreground: str, point_size: int) -> None:
        self.ops.append(("placeholder", text, background, foreground, point_size))

    def blits(self) -> List[Tuple[Any, ...]]:
        return [op for op in self.ops if op[0] == "blit"]

    def placeholders(self) -> List[str]:
        return [op[1] for op in self.ops if op[0] == "placeholder"]


class FailingPainter(RecordingPainter):
    def blit(self, raster: SnapshotRaster, x: float, y: float, width: float, height: float) -> None:
        raise RuntimeError("tainted source")


class FakeOverlay:
    def __init__(self, size: float, position: Tuple[float, float]) -> None:
        self.size = size
        self.position = position
        self.visible = False
        self.removed = False
        self.painter_factory: Callable[[], RecordingPainter] = RecordingPainter
        self.frames: List[RecordingPainter] = []

    @contextmanager
    def painter(self):
        painter = self.painter_factory()
        self.frames.append(painter)
        yield painter

    def set_visible(self, visible: bool) -> None:
        self.visible = visible

    def is_visible(self) -> bool:
        return self.visible

    def remove(self) -> None:
        self.removed = True


class FakeElement:
    def __init__(
        self,
        rect: Rect,
        *,
        sampleable: bool = True,
        raster: Optional[SnapshotRaster] = None,
        target: object = None,
    ) -> None:
        self.rect = rect
        self.sampleable = sampleable
        self.raster = raster or SnapshotRaster(image="live", width=int(rect.width), height=int(rect.height))
        self._target = target if target is not None else object()

    @property
    def target(self) -> object:
        return self._target

    def bounding_rect(self) -> Rect:
        return self.rect

    def is_pixel_source(self) -> bool:
        return self.sampleable

    def live_raster(self) -> SnapshotRaster:
        return self.raster


class FakeRasterizer:
    def __init__(self) -> None:
        self.calls: List[Tuple[Any, CaptureOptions, Future]] = []

    def capture(self, target: Any, options: CaptureOptions) -> Future:
        future: Future = Future()
        self.calls.append((target, options, future))
        return future

    def complete(self, index: int, raster: SnapshotRaster) -> None:
        self.calls[index][2].set_result(raster)

    def fail(self, index: int, error: Exception) -> None:
        self.calls[index][2].set_exception(error)


class FakeHost:
    """In-memory PageHost with manually driven timers and frames."""

    def __init__(self, *, loaded: bool = True) -> None:
        self.elements: Dict[ElementRole, FakeElement] = {}
        self.scroll = (0.0, 0.0)
        self.viewport = (800.0, 600.0)
        self.document = (800.0, 600.0)
        self.root = object()
        self.loaded = loaded
        self.load_callbacks: List[Callable[[], None]] = []
        self.timers: Dict[str, Tuple[int, Callable[[], None]]] = {}
        self.cancelled: List[object] = []
        self.frames: Dict[str, Callable[[], None]] = {}
        self.cancelled_frames: List[object] = []
        self.listeners: Dict[int, Tuple[EventKind, Callable[[InputEvent], None]]] = {}
        self.overlays: List[FakeOverlay] = []
        self._next_id = 0

    def _token(self, prefix: str) -> str:
        self._next_id += 1
        return f"{prefix}{self._next_id}"

    def find_element(self, role: ElementRole) -> Optional[FakeElement]:
        return self.elements.get(role)

    def scroll_offset(self) -> Tuple[float, float]:
        return self.scroll

    def viewport_size(self) -> Tuple[float, float]:
        return self.viewport

    def document_size(self) -> Tuple[float, float]:
        return self.document

    def document_root(self) -> object:
        return self.root

    def is_loaded(self) -> bool:
        return self.loaded

    def on_loaded(self, callback: Callable[[], None]) -> None:
        self.load_callbacks.append(callback)

    def fire_loaded(self) -> None:
        self.loaded = True
        callbacks, self.load_callbacks = self.load_callbacks, []
        for callback in callbacks:
            callback()

    def request_frame(self, callback: Callable[[], None]) -> str:
        handle = self._token("f")
        self.frames[handle] = callback
        return handle

    def cancel_frame(self, handle: object) -> None:
        self.cancelled_frames.append(handle)
        self.frames.pop(handle, None)  # type: ignore[arg-type]

    def run_frame(self) -> None:
        assert self.frames, "no frame pending"
        handle = next(iter(self.frames))
        callback = self.frames.pop(handle)
        callback()

    def after(self, delay_ms: int, callback: Callable[[], None]) -> str:
        handle = self._token("t")
        self.timers[handle] = (delay_ms, callback)
        return handle

    def cancel(self, handle: object) -> None:
        self.cancelled.append(handle)
        self.timers.pop(handle, None)  # type: ignore[arg-type]

    def run_timer(self, handle: str) -> None:
        _delay, callback = self.timers.pop(handle)
        callback()

    def run_timers_with_delay(self, delay_ms: int) -> int:
        due = [handle for handle, (delay, _cb) in self.timers.items() if delay == delay_ms]
        for handle in due:
            if handle in self.timers:
                self.run_timer(handle)
        return len(due)

    def timer_delays(self) -> List[int]:
        return sorted(delay for delay, _cb in self.timers.values())

    def add_listener(self, kind: EventKind, listener: Callable[[InputEvent], None]) -> int:
        self._next_id += 1
        self.listeners[self._next_id] = (kind, listener)
        return self._next_id

    def remove_listener(self, handle: object) -> None:
        self.listeners.pop(handle, None)  # type: ignore[arg-type]

    def emit(self, kind: EventKind, x: float = 0.0, y: float = 0.0) -> None:
        event = InputEvent(kind=kind, x=x, y=y)
        for registered_kind, listener in list(self.listeners.values()):
            if registered_kind is kind:
                listener(event)

    def create_overlay(self, size: float, position: Tuple[float, float]) -> FakeOverlay:
        overlay = FakeOverlay(size, position)
        self.overlays.append(overlay)
        return overlay


@pytest.fixture
def fakes():
    return types.SimpleNamespace(
        Host=FakeHost,
        Element=FakeElement,
        Rasterizer=FakeRasterizer,
        Painter=RecordingPainter,
        FailingPainter=FailingPainter,
    )


@pytest.fixture
def host() -> FakeHost:
    return FakeHost()


@pytest.fixture
def rasterizer() -> FakeRasterizer:
    return FakeRasterizer()
