"""Configuration helpers for the page magnifier."""
from __future__ import annotations

import json
import math
import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Mapping, Optional

DEV_MODE_ENV_VAR = "MAGNIFIER_DEV_MODE"


def is_dev_mode() -> bool:
    value = os.getenv(DEV_MODE_ENV_VAR)
    if value is None:
        return False
    return value.strip().lower() in {"1", "true", "yes", "on"}


class ActivationMode(str, Enum):
    DRAG = "drag"
    MOVE = "move"


@dataclass(frozen=True)
class Position:
    x: float = 20.0
    y: float = 20.0


@dataclass(frozen=True)
class UpdateFrequency:
    """Capture cadence in milliseconds."""

    main_snapshot_interval_ms: int = 16
    region_snapshot_interval_ms: int = 16
    resize_debounce_ms: int = 150


@dataclass(frozen=True)
class MagnifierConfig:
    """Immutable construction options for a magnifier instance."""

    size: float = 200.0
    zoom: float = 2.0
    position: Position = field(default_factory=Position)
    activation_mode: ActivationMode = ActivationMode.DRAG
    update_frequency: UpdateFrequency = field(default_factory=UpdateFrequency)
    region_capture_scale: float = 2.0
    touch_drag_threshold_px: float = 5.0
    initial_snapshot_delay_ms: int = 100

    @property
    def source_size(self) -> float:
        return self.size / self.zoom

    @classmethod
    def from_options(cls, options: Optional[Mapping[str, Any]] = None) -> "MagnifierConfig":
        """Build a config from user options, accepting snake_case or camelCase keys."""
        defaults = cls()
        data: Mapping[str, Any] = options or {}

        def _pick(*keys: str) -> Any:
            for key in keys:
                if key in data:
                    return data[key]
            return None

        position_raw = _pick("position")
        position = defaults.position
        if isinstance(position_raw, Mapping):
            position = Position(
                x=_coerce_float(position_raw.get("x"), defaults.position.x),
                y=_coerce_float(position_raw.get("y"), defaults.position.y),
            )
        elif isinstance(position_raw, (list, tuple)) and len(position_raw) == 2:
            position = Position(
                x=_coerce_float(position_raw[0], defaults.position.x),
                y=_coerce_float(position_raw[1], defaults.position.y),
            )

        frequency_raw = _pick("update_frequency", "updateFrequency")
        frequency = defaults.update_frequency
        if isinstance(frequency_raw, Mapping):
            base = defaults.update_frequency

            def _interval(fallback: int, *keys: str) -> int:
                for key in keys:
                    if key in frequency_raw:
                        return _coerce_positive_int(frequency_raw[key], fallback)
                return fallback

            frequency = UpdateFrequency(
                main_snapshot_interval_ms=_interval(
                    base.main_snapshot_interval_ms,
                    "main_snapshot_interval_ms",
                    "mainSnapshotIntervalMs",
                    "MAIN_SNAPSHOT",
                ),
                region_snapshot_interval_ms=_interval(
                    base.region_snapshot_interval_ms,
                    "region_snapshot_interval_ms",
                    "regionSnapshotIntervalMs",
                    "SVG_SNAPSHOT",
                ),
                resize_debounce_ms=_interval(
                    base.resize_debounce_ms,
                    "resize_debounce_ms",
                    "resizeDebounceMs",
                    "RESIZE_DEBOUNCE",
                ),
            )

        return cls(
            size=_coerce_positive_float(_pick("size"), defaults.size),
            zoom=_coerce_positive_float(_pick("zoom"), defaults.zoom),
            position=position,
            activation_mode=_coerce_mode(_pick("activation_mode", "activationMode"), defaults.activation_mode),
            update_frequency=frequency,
            region_capture_scale=max(
                1.0,
                _coerce_positive_float(
                    _pick("region_capture_scale", "regionCaptureScale"), defaults.region_capture_scale
                ),
            ),
            touch_drag_threshold_px=_coerce_positive_float(
                _pick("touch_drag_threshold_px", "touchDragThresholdPx"), defaults.touch_drag_threshold_px
            ),
            initial_snapshot_delay_ms=_coerce_non_negative_int(
                _pick("initial_snapshot_delay_ms", "initialSnapshotDelayMs"), defaults.initial_snapshot_delay_ms
            ),
        )


def load_config(path: Path) -> MagnifierConfig:
    """Read magnifier options from a JSON file, falling back to defaults."""
    try:
        raw = path.read_text(encoding="utf-8")
    except (FileNotFoundError, OSError):
        return MagnifierConfig()
    try:
        data = json.loads(raw)
    except json.JSONDecodeError:
        return MagnifierConfig()
    if not isinstance(data, dict):
        return MagnifierConfig()
    return MagnifierConfig.from_options(data)


def _coerce_float(raw: object, fallback: float) -> float:
    if raw is None or isinstance(raw, bool):
        return fallback
    try:
        return float(raw)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return fallback


def _coerce_positive_float(raw: object, fallback: float) -> float:
    value = _coerce_float(raw, fallback)
    if not math.isfinite(value) or value <= 0:
        return fallback
    return value


def _coerce_positive_int(raw: object, fallback: int) -> int:
    value = _coerce_float(raw, float(fallback))
    if not math.isfinite(value) or value <= 0:
        return fallback
    return max(1, int(value))


def _coerce_non_negative_int(raw: object, fallback: int) -> int:
    value = _coerce_float(raw, float(fallback))
    if not math.isfinite(value) or value < 0:
        return fallback
    return int(value)


def _coerce_mode(raw: object, fallback: ActivationMode) -> ActivationMode:
    if isinstance(raw, ActivationMode):
        return raw
    if isinstance(raw, str):
        token = raw.strip().lower()
        for mode in ActivationMode:
            if mode.value == token:
                return mode
    return fallback
