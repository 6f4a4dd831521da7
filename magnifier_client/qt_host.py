"""PyQt6 page host: a QScrollArea document, widget rasterizer and circular overlay."""
from __future__ import annotations

import itertools
import logging
import math
from concurrent.futures import Future
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

from PyQt6.QtCore import QEvent, QObject, QPoint, QRectF, Qt, QTimer
from PyQt6.QtGui import QColor, QFont, QImage, QInputDevice, QPainter, QPainterPath, QPen, QWindow
from PyQt6.QtWidgets import QApplication, QGraphicsDropShadowEffect, QScrollArea, QWidget

from magnifier_client.logging_utils import LOGGER_NAME
from magnifier_client.page_host import ElementRole, EventKind, InputEvent, InputListener, Rect
from magnifier_client.raster import CaptureOptions, RasterizerLoadResult, SnapshotRaster

_LOGGER = logging.getLogger(LOGGER_NAME)

FRAME_INTERVAL_MS = 16
OVERLAY_BORDER_WIDTH = 3
OVERLAY_BORDER_COLOR = QColor(0, 0, 0, 178)

_MOUSE_EVENTS = {
    QEvent.Type.MouseButtonPress: EventKind.POINTER_DOWN,
    QEvent.Type.MouseMove: EventKind.POINTER_MOVE,
    QEvent.Type.MouseButtonRelease: EventKind.POINTER_UP,
}
_TOUCH_EVENTS = {
    QEvent.Type.TouchBegin: EventKind.TOUCH_START,
    QEvent.Type.TouchUpdate: EventKind.TOUCH_MOVE,
    QEvent.Type.TouchEnd: EventKind.TOUCH_END,
}


def _from_touchscreen(event: QEvent) -> bool:
    """True for mouse events Qt synthesized from an unaccepted touch."""
    device = event.device()  # type: ignore[attr-defined]
    if device is None:
        return False
    return device.type() == QInputDevice.DeviceType.TouchScreen


class QtPageElement:
    """A designated widget inside the document, measured against the scroll viewport."""

    def __init__(self, widget: QWidget, viewport: QWidget) -> None:
        self._widget = widget
        self._viewport = viewport

    @property
    def target(self) -> QWidget:
        return self._widget

    def bounding_rect(self) -> Rect:
        origin = self._viewport.mapFromGlobal(self._widget.mapToGlobal(QPoint(0, 0)))
        return Rect(float(origin.x()), float(origin.y()), float(self._widget.width()), float(self._widget.height()))

    def is_pixel_source(self) -> bool:
        return self._widget.isVisible() and self._widget.width() > 0 and self._widget.height() > 0

    def live_raster(self) -> SnapshotRaster:
        image = self._widget.grab().toImage()
        if image.isNull():
            raise RuntimeError(f"grab of {self._widget.objectName()!r} returned an empty image")
        return SnapshotRaster(image=image, width=image.width(), height=image.height())


class _StyleText:
    """Copy of one widget's style sheet that the pre-capture hook may rewrite."""

    def __init__(self, owner: Any, text: str) -> None:
        self.owner = owner
        self.original = text
        self.style_text = text

    @property
    def text(self) -> str:
        return self.style_text

    @text.setter
    def text(self, value: str) -> None:
        self.style_text = value

    @property
    def changed(self) -> bool:
        return self.style_text != self.original


class QtStyleClone:
    """Style-sheet copy of a widget tree, handed to the rasterizer's pre-capture hook.

    The hook edits the copies only. :meth:`applied` installs the rewritten sheets
    for the duration of one synchronous render and restores the originals before
    control returns to the event loop. Sheets on ancestors of the root cascade
    into the capture, so they are collected alongside the application sheet.
    """

    def __init__(self, root: QWidget) -> None:
        widgets = [root, *root.findChildren(QWidget)]
        self.elements: List[_StyleText] = [_StyleText(widget, widget.styleSheet()) for widget in widgets]
        self.style_elements: List[_StyleText] = []
        ancestor = root.parentWidget()
        while ancestor is not None:
            self.style_elements.append(_StyleText(ancestor, ancestor.styleSheet()))
            ancestor = ancestor.parentWidget()
        app = QApplication.instance()
        if isinstance(app, QApplication):
            self.style_elements.append(_StyleText(app, app.styleSheet()))
        self.style_sheets: Tuple[Any, ...] = ()

    @contextmanager
    def applied(self) -> Iterator[None]:
        changed = [entry for entry in (*self.elements, *self.style_elements) if entry.changed]
        for entry in changed:
            entry.owner.setStyleSheet(entry.style_text)
        try:
            yield
        finally:
            for entry in changed:
                try:
                    entry.owner.setStyleSheet(entry.original)
                except RuntimeError:
                    # Widget deleted during the render.
                    pass


class QtWidgetRasterizer:
    """Renders a widget subtree into a QImage on the next event-loop turn."""

    def capture(self, target: Any, options: CaptureOptions) -> "Future[SnapshotRaster]":
        future: "Future[SnapshotRaster]" = Future()
        QTimer.singleShot(0, lambda: self._render(target, options, future))
        return future

    def _render(self, target: QWidget, options: CaptureOptions, future: "Future[SnapshotRaster]") -> None:
        if not future.set_running_or_notify_cancel():
            return
        try:
            clone = QtStyleClone(target)
            if options.on_clone is not None:
                options.on_clone(clone)
            with clone.applied():
                raster = render_widget(target, options.scale, options.background)
        except Exception as exc:
            future.set_exception(exc)
            return
        future.set_result(raster)


def render_widget(widget: QWidget, scale: float, background: Optional[str]) -> SnapshotRaster:
    scale = max(1.0, float(scale))
    width = max(1, int(math.ceil(widget.width() * scale)))
    height = max(1, int(math.ceil(widget.height() * scale)))
    image = QImage(width, height, QImage.Format.Format_ARGB32_Premultiplied)
    image.fill(QColor(background) if background else QColor(Qt.GlobalColor.transparent))
    painter = QPainter(image)
    try:
        painter.scale(scale, scale)
        widget.render(painter, QPoint(0, 0))
    finally:
        painter.end()
    return SnapshotRaster(image=image, width=width, height=height)


class QtRasterizerLoader:
    def load(self) -> RasterizerLoadResult:
        if QApplication.instance() is None:
            return RasterizerLoadResult.unavailable("QApplication is not running")
        return RasterizerLoadResult(rasterizer=QtWidgetRasterizer())


class QtSurfacePainter:
    """SurfacePainter over a QPainter with smoothing disabled."""

    def __init__(self, painter: QPainter, size: int) -> None:
        self._painter = painter
        self._size = size
        self._painter.setRenderHint(QPainter.RenderHint.SmoothPixmapTransform, False)

    def clear(self, background: str) -> None:
        self._painter.setCompositionMode(QPainter.CompositionMode.CompositionMode_Source)
        self._painter.fillRect(0, 0, self._size, self._size, QColor(background))
        self._painter.setCompositionMode(QPainter.CompositionMode.CompositionMode_SourceOver)

    def blit(self, raster: SnapshotRaster, x: float, y: float, width: float, height: float) -> None:
        self._painter.drawImage(
            QRectF(0.0, 0.0, float(self._size), float(self._size)),
            raster.image,
            QRectF(x, y, width, height),
        )

    def placeholder(self, text: str, *, background: str, foreground: str, point_size: int) -> None:
        self._painter.fillRect(0, 0, self._size, self._size, QColor(background))
        font = QFont("Arial")
        font.setPixelSize(point_size)
        self._painter.setFont(font)
        self._painter.setPen(QColor(foreground))
        self._painter.drawText(
            QRectF(0.0, 0.0, float(self._size), float(self._size)),
            int(Qt.AlignmentFlag.AlignCenter),
            text,
        )


class MagnifierOverlay(QWidget):
    """Circular, input-transparent overlay pinned at a fixed window position."""

    def __init__(self, parent: QWidget, size: int, position: Tuple[float, float]) -> None:
        super().__init__(parent)
        self._size = size
        self._surface = QImage(size, size, QImage.Format.Format_ARGB32_Premultiplied)
        self._surface.fill(QColor("white"))
        self.setObjectName("magnifier")
        self.setAttribute(Qt.WidgetAttribute.WA_TransparentForMouseEvents, True)
        self.setAttribute(Qt.WidgetAttribute.WA_TranslucentBackground, True)
        self.setGeometry(int(round(position[0])), int(round(position[1])), size, size)
        shadow = QGraphicsDropShadowEffect(self)
        shadow.setBlurRadius(24)
        shadow.setOffset(0, 6)
        shadow.setColor(QColor(0, 0, 0, 77))
        self.setGraphicsEffect(shadow)

    @property
    def surface(self) -> QImage:
        return self._surface

    @contextmanager
    def painter(self) -> Iterator[QtSurfacePainter]:
        painter = QPainter(self._surface)
        try:
            yield QtSurfacePainter(painter, self._size)
        finally:
            painter.end()
            self.update()

    def set_visible(self, visible: bool) -> None:
        self.setVisible(visible)
        if visible:
            self.raise_()

    def is_visible(self) -> bool:
        return self.isVisible()

    def remove(self) -> None:
        self.hide()
        self.setParent(None)
        self.deleteLater()

    def paintEvent(self, event) -> None:  # type: ignore[override]
        painter = QPainter(self)
        try:
            painter.setRenderHint(QPainter.RenderHint.Antialiasing, True)
            inset = OVERLAY_BORDER_WIDTH / 2.0
            circle = QRectF(inset, inset, self._size - OVERLAY_BORDER_WIDTH, self._size - OVERLAY_BORDER_WIDTH)
            path = QPainterPath()
            path.addEllipse(circle)
            painter.setClipPath(path)
            painter.drawImage(QRectF(0.0, 0.0, float(self._size), float(self._size)), self._surface)
            painter.setClipping(False)
            pen = QPen(OVERLAY_BORDER_COLOR)
            pen.setWidth(OVERLAY_BORDER_WIDTH)
            painter.setPen(pen)
            painter.setBrush(Qt.BrushStyle.NoBrush)
            painter.drawEllipse(circle)
        finally:
            painter.end()


class QtPageHost(QObject):
    """PageHost over a top-level window whose QScrollArea content is the document."""

    def __init__(self, window: QWidget, scroll_area: QScrollArea) -> None:
        super().__init__(window)
        self._window = window
        self._scroll_area = scroll_area
        self._loaded = window.isVisible()
        self._load_callbacks: List[Callable[[], None]] = []
        self._timers: set[QTimer] = set()
        self._listeners: Dict[EventKind, Dict[int, InputListener]] = {kind: {} for kind in EventKind}
        self._listener_index: Dict[int, EventKind] = {}
        self._ids = itertools.count(1)
        self._filter_installed = False
        scroll_area.horizontalScrollBar().valueChanged.connect(self._on_scrolled)
        scroll_area.verticalScrollBar().valueChanged.connect(self._on_scrolled)
        app = QApplication.instance()
        if app is not None:
            app.installEventFilter(self)
            self._filter_installed = True

    # -- geometry -----------------------------------------------------------------

    def _viewport(self) -> QWidget:
        return self._scroll_area.viewport()

    def find_element(self, role: ElementRole) -> Optional[QtPageElement]:
        content = self._scroll_area.widget()
        if content is None:
            return None
        widget = content if content.objectName() == role.value else content.findChild(QWidget, role.value)
        if widget is None:
            return None
        return QtPageElement(widget, self._viewport())

    def scroll_offset(self) -> Tuple[float, float]:
        return (
            float(self._scroll_area.horizontalScrollBar().value()),
            float(self._scroll_area.verticalScrollBar().value()),
        )

    def viewport_size(self) -> Tuple[float, float]:
        viewport = self._viewport()
        return float(viewport.width()), float(viewport.height())

    def document_size(self) -> Tuple[float, float]:
        content = self._scroll_area.widget()
        if content is None:
            return self.viewport_size()
        return float(content.width()), float(content.height())

    def document_root(self) -> Optional[QWidget]:
        return self._scroll_area.widget()

    # -- load ---------------------------------------------------------------------

    def is_loaded(self) -> bool:
        return self._loaded

    def on_loaded(self, callback: Callable[[], None]) -> None:
        if self._loaded:
            QTimer.singleShot(0, callback)
            return
        self._load_callbacks.append(callback)

    def _mark_loaded(self) -> None:
        if self._loaded:
            return
        self._loaded = True
        callbacks, self._load_callbacks = self._load_callbacks, []
        for callback in callbacks:
            try:
                callback()
            except Exception as exc:
                _LOGGER.warning("Load callback failed: %s", exc)

    # -- scheduling ---------------------------------------------------------------

    def request_frame(self, callback: Callable[[], None]) -> QTimer:
        return self.after(FRAME_INTERVAL_MS, callback)

    def cancel_frame(self, handle: object) -> None:
        self.cancel(handle)

    def after(self, delay_ms: int, callback: Callable[[], None]) -> QTimer:
        timer = QTimer(self)
        timer.setSingleShot(True)
        timer.setInterval(max(0, int(delay_ms)))

        def _fire() -> None:
            self._timers.discard(timer)
            timer.deleteLater()
            callback()

        timer.timeout.connect(_fire)
        self._timers.add(timer)
        timer.start()
        return timer

    def cancel(self, handle: object) -> None:
        if not isinstance(handle, QTimer):
            return
        handle.stop()
        if handle in self._timers:
            self._timers.discard(handle)
            handle.deleteLater()

    # -- input --------------------------------------------------------------------

    def add_listener(self, kind: EventKind, listener: InputListener) -> int:
        token = next(self._ids)
        self._listeners[kind][token] = listener
        self._listener_index[token] = kind
        return token

    def remove_listener(self, handle: object) -> None:
        kind = self._listener_index.pop(handle, None)  # type: ignore[arg-type]
        if kind is not None:
            self._listeners[kind].pop(handle, None)  # type: ignore[arg-type]

    def _emit(self, kind: EventKind, x: float = 0.0, y: float = 0.0) -> None:
        event = InputEvent(kind=kind, x=x, y=y)
        for listener in list(self._listeners[kind].values()):
            try:
                listener(event)
            except Exception as exc:
                _LOGGER.warning("Input listener for %s failed: %s", kind.value, exc)

    def _on_scrolled(self, _value: int) -> None:
        self._emit(EventKind.SCROLL)

    def _viewport_point(self, global_x: float, global_y: float) -> Tuple[float, float]:
        local = self._viewport().mapFromGlobal(QPoint(int(round(global_x)), int(round(global_y))))
        return float(local.x()), float(local.y())

    def eventFilter(self, obj: QObject, event: QEvent) -> bool:  # type: ignore[override]
        try:
            self._dispatch(obj, event)
        except Exception as exc:
            _LOGGER.debug("Event translation failed: %s", exc)
        return False

    def _dispatch(self, obj: QObject, event: QEvent) -> None:
        event_type = event.type()
        if obj is self._window:
            if event_type == QEvent.Type.Show:
                self._mark_loaded()
            elif event_type == QEvent.Type.Resize:
                self._emit(EventKind.RESIZE)
            return
        # Input arrives once at the QWindow before widget propagation.
        if not isinstance(obj, QWindow) or obj is not self._window.windowHandle():
            return
        if event_type in _MOUSE_EVENTS:
            if _from_touchscreen(event):
                # Touch input is handled through the Touch* events only.
                return
            point = event.globalPosition()  # type: ignore[attr-defined]
            x, y = self._viewport_point(point.x(), point.y())
            self._emit(_MOUSE_EVENTS[event_type], x, y)
        elif event_type in _TOUCH_EVENTS:
            points = event.points()  # type: ignore[attr-defined]
            if points:
                point = points[0].globalPosition()
                x, y = self._viewport_point(point.x(), point.y())
            else:
                x, y = 0.0, 0.0
            self._emit(_TOUCH_EVENTS[event_type], x, y)
        elif event_type == QEvent.Type.Leave:
            self._emit(EventKind.POINTER_LEAVE)

    # -- overlay ------------------------------------------------------------------

    def create_overlay(self, size: float, position: Tuple[float, float]) -> MagnifierOverlay:
        return MagnifierOverlay(self._window, int(round(size)), position)

    def dispose(self) -> None:
        if self._filter_installed:
            app = QApplication.instance()
            if app is not None:
                app.removeEventFilter(self)
            self._filter_installed = False
        for timer in list(self._timers):
            self.cancel(timer)
