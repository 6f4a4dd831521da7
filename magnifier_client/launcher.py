from __future__ import annotations

import argparse
import math
import os
import sys
from dataclasses import replace
from pathlib import Path
from typing import Optional, Tuple

from PyQt6.QtCore import QByteArray, QPointF, Qt, QTimer
from PyQt6.QtGui import QColor, QPainter
from PyQt6.QtSvgWidgets import QSvgWidget
from PyQt6.QtWidgets import QApplication, QLabel, QScrollArea, QVBoxLayout, QWidget

from magnifier_client.config import ActivationMode, MagnifierConfig, is_dev_mode, load_config
from magnifier_client.logging_utils import configure_client_logging, get_client_logger
from magnifier_client.magnifier import Magnifier
from magnifier_client.page_host import ElementRole
from magnifier_client.qt_host import QtPageHost, QtRasterizerLoader

_CLIENT_LOGGER = get_client_logger()

_PAGE_STYLE = """
QWidget#document { background: #fafafa; }
QLabel { color: #222222; font-size: 15px; }
QLabel[role="heading"] { color: #1d4ed8; font-size: 24px; font-weight: bold; }
"""

_LOREM = (
    "Hold the mouse button and drag across this page to magnify it. Static text is "
    "sampled from a periodic page snapshot, the animated canvas is sampled live, and "
    "the SVG below is re-captured at double resolution."
)


class DemoCanvas(QWidget):
    """Continuously animated widget standing in for a live canvas."""

    def __init__(self, parent: Optional[QWidget] = None) -> None:
        super().__init__(parent)
        self.setObjectName(ElementRole.DYNAMIC_CANVAS.value)
        self.setFixedSize(480, 240)
        self._phase = 0.0
        self._timer = QTimer(self)
        self._timer.timeout.connect(self._advance)
        self._timer.start(16)

    def _advance(self) -> None:
        self._phase = (self._phase + 0.04) % (2 * math.pi)
        self.update()

    def paintEvent(self, event) -> None:  # type: ignore[override]
        painter = QPainter(self)
        try:
            painter.fillRect(self.rect(), QColor("#0f172a"))
            painter.setRenderHint(QPainter.RenderHint.Antialiasing, True)
            for index in range(6):
                angle = self._phase + index * math.pi / 3
                x = self.width() / 2 + math.cos(angle) * 160
                y = self.height() / 2 + math.sin(angle * 2) * 70
                painter.setBrush(QColor.fromHsv((index * 60) % 360, 200, 255))
                painter.setPen(Qt.PenStyle.NoPen)
                painter.drawEllipse(QPointF(x, y), 18, 18)
        finally:
            painter.end()


def _svg_markup(angle: float) -> bytes:
    return (
        '<svg xmlns="http://www.w3.org/2000/svg" width="240" height="240" viewBox="0 0 240 240">'
        '<rect width="240" height="240" fill="#fff7ed"/>'
        f'<g transform="rotate({angle:.1f} 120 120)">'
        '<rect x="70" y="70" width="100" height="100" fill="#ea580c"/>'
        '<circle cx="120" cy="120" r="20" fill="#fde68a"/>'
        "</g></svg>"
    ).encode("utf-8")


class DemoSvg(QSvgWidget):
    """Rotating SVG document standing in for a live SVG region."""

    def __init__(self, parent: Optional[QWidget] = None) -> None:
        super().__init__(parent)
        self.setObjectName(ElementRole.DYNAMIC_SVG.value)
        self.setFixedSize(240, 240)
        self._angle = 0.0
        self.load(QByteArray(_svg_markup(self._angle)))
        self._timer = QTimer(self)
        self._timer.timeout.connect(self._advance)
        self._timer.start(33)

    def _advance(self) -> None:
        self._angle = (self._angle + 2.0) % 360.0
        self.load(QByteArray(_svg_markup(self._angle)))


def build_demo_window() -> Tuple[QWidget, QScrollArea]:
    window = QWidget()
    window.setWindowTitle("Page magnifier demo")
    window.resize(900, 700)
    window.setStyleSheet(_PAGE_STYLE)

    document = QWidget()
    document.setObjectName("document")
    layout = QVBoxLayout(document)
    layout.setContentsMargins(40, 40, 40, 40)
    layout.setSpacing(24)

    heading = QLabel("Page magnifier")
    heading.setProperty("role", "heading")
    layout.addWidget(heading)
    for _ in range(2):
        paragraph = QLabel(_LOREM)
        paragraph.setWordWrap(True)
        layout.addWidget(paragraph)
    layout.addWidget(DemoCanvas())
    layout.addWidget(DemoSvg())
    for index in range(12):
        paragraph = QLabel(f"{index + 1}. {_LOREM}")
        paragraph.setWordWrap(True)
        layout.addWidget(paragraph)
    layout.addStretch(1)

    scroll_area = QScrollArea()
    scroll_area.setWidgetResizable(True)
    scroll_area.setWidget(document)
    outer = QVBoxLayout(window)
    outer.setContentsMargins(0, 0, 0, 0)
    outer.addWidget(scroll_area)
    return window, scroll_area


def resolve_config(args: argparse.Namespace) -> MagnifierConfig:
    config_path = args.config or os.getenv("MAGNIFIER_CONFIG")
    config = load_config(Path(config_path).expanduser()) if config_path else MagnifierConfig()
    overrides = {}
    if args.size is not None and args.size > 0:
        overrides["size"] = float(args.size)
    if args.zoom is not None and args.zoom > 0:
        overrides["zoom"] = float(args.zoom)
    if args.mode:
        overrides["activation_mode"] = ActivationMode(args.mode)
    return replace(config, **overrides) if overrides else config


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Page magnifier demo")
    parser.add_argument("--config", help="Path to a JSON file with magnifier options")
    parser.add_argument("--size", type=float, help="Overlay diameter in pixels")
    parser.add_argument("--zoom", type=float, help="Magnification factor")
    parser.add_argument("--mode", choices=[mode.value for mode in ActivationMode], help="Activation mode")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    args = parser.parse_args(argv)

    debug_enabled = args.debug or is_dev_mode()
    configure_client_logging(_CLIENT_LOGGER, debug_enabled=debug_enabled)
    config = resolve_config(args)
    _CLIENT_LOGGER.info("Starting magnifier demo (pid=%s)", os.getpid())
    _CLIENT_LOGGER.debug(
        "Resolved config: size=%.0f zoom=%.2f mode=%s intervals=%s",
        config.size,
        config.zoom,
        config.activation_mode.value,
        config.update_frequency,
    )

    app = QApplication(sys.argv if argv is None else [sys.argv[0], *argv])
    window, scroll_area = build_demo_window()
    host = QtPageHost(window, scroll_area)
    magnifier = Magnifier(host, config=config, rasterizer_loader=QtRasterizerLoader())
    window.show()

    exit_code = app.exec()
    magnifier.destroy()
    host.dispose()
    _CLIENT_LOGGER.info("Magnifier demo exiting with code %s", exit_code)
    return int(exit_code)


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
