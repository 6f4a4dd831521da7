"""Activation state machine for the drag and move modes.

``transition`` is pure: it maps (state, event) to a new state plus a tuple of
effects. ``ActivationController`` keeps the current state and applies effects
through injected callables, so no toolkit events are needed to exercise it.
"""
from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from typing import Callable, Optional, Tuple

from magnifier_client.config import ActivationMode
from magnifier_client.logging_utils import OnceLogger
from magnifier_client.page_host import EventKind, InputEvent


class Effect(str, Enum):
    SHOW_OVERLAY = "show_overlay"
    HIDE_OVERLAY = "hide_overlay"
    START_CAPTURE = "start_capture"
    STOP_CAPTURE = "stop_capture"
    SCHEDULE_RECAPTURE = "schedule_recapture"


@dataclass(frozen=True)
class PointerState:
    """Last pointer position in viewport space plus activation flags."""

    x: float = 0.0
    y: float = 0.0
    dragging: bool = False
    capturing: bool = False
    touch_origin: Optional[Tuple[float, float]] = None

    @property
    def active(self) -> bool:
        return self.dragging


@dataclass(frozen=True)
class Transition:
    state: PointerState
    effects: Tuple[Effect, ...] = ()


def _activate(state: PointerState, x: float, y: float) -> Transition:
    effects = []
    if not state.dragging:
        effects.append(Effect.SHOW_OVERLAY)
    if not state.capturing:
        effects.append(Effect.START_CAPTURE)
    return Transition(
        replace(state, x=x, y=y, dragging=True, capturing=True, touch_origin=None),
        tuple(effects),
    )


def _track(state: PointerState, x: float, y: float) -> Transition:
    # An active pointer whose capture failed to start retries on the next move.
    if state.capturing:
        return Transition(replace(state, x=x, y=y))
    return _activate(state, x, y)


def _deactivate(state: PointerState) -> Transition:
    effects = []
    if state.dragging:
        effects.append(Effect.HIDE_OVERLAY)
    if state.capturing:
        effects.append(Effect.STOP_CAPTURE)
    return Transition(replace(state, dragging=False, capturing=False, touch_origin=None), tuple(effects))


def _drag_transition(state: PointerState, event: InputEvent, touch_threshold: float) -> Transition:
    kind = event.kind
    if kind is EventKind.POINTER_DOWN:
        return _activate(state, event.x, event.y)
    if kind is EventKind.POINTER_MOVE:
        if state.dragging:
            return _track(state, event.x, event.y)
        return Transition(state)
    if kind in (EventKind.POINTER_UP, EventKind.TOUCH_END):
        return _deactivate(state)
    if kind is EventKind.TOUCH_START:
        if state.dragging:
            return Transition(state)
        return Transition(replace(state, x=event.x, y=event.y, touch_origin=(event.x, event.y)))
    if kind is EventKind.TOUCH_MOVE:
        if state.dragging:
            return _track(state, event.x, event.y)
        origin_x, origin_y = state.touch_origin if state.touch_origin is not None else (state.x, state.y)
        if abs(event.x - origin_x) > touch_threshold or abs(event.y - origin_y) > touch_threshold:
            return _activate(state, event.x, event.y)
        return Transition(state)
    return Transition(state)


def _move_transition(state: PointerState, event: InputEvent) -> Transition:
    kind = event.kind
    if kind in (EventKind.POINTER_MOVE, EventKind.POINTER_DOWN, EventKind.TOUCH_START, EventKind.TOUCH_MOVE):
        return _track(state, event.x, event.y)
    if kind in (EventKind.POINTER_LEAVE, EventKind.TOUCH_END):
        return _deactivate(state)
    return Transition(state)


def transition(
    state: PointerState,
    event: InputEvent,
    *,
    mode: ActivationMode,
    touch_threshold: float = 5.0,
) -> Transition:
    if event.kind in (EventKind.RESIZE, EventKind.SCROLL):
        return Transition(state, (Effect.SCHEDULE_RECAPTURE,))
    if mode is ActivationMode.MOVE:
        return _move_transition(state, event)
    return _drag_transition(state, event, touch_threshold)


class ActivationController:
    """Holds the pointer state and applies transition effects."""

    def __init__(
        self,
        *,
        mode: ActivationMode,
        touch_threshold: float,
        set_visible_fn: Callable[[bool], None],
        start_capture_fn: Callable[[], None],
        stop_capture_fn: Callable[[], None],
        schedule_recapture_fn: Callable[[], None],
        log_fn: Callable[..., None],
        failures: Optional[OnceLogger] = None,
    ) -> None:
        self._mode = mode
        self._touch_threshold = touch_threshold
        self._set_visible = set_visible_fn
        self._start_capture = start_capture_fn
        self._stop_capture = stop_capture_fn
        self._schedule_recapture = schedule_recapture_fn
        self._log = log_fn
        self._failures = failures
        self._state = PointerState()

    @property
    def state(self) -> PointerState:
        return self._state

    @property
    def mode(self) -> ActivationMode:
        return self._mode

    def handle(self, event: InputEvent) -> Tuple[Effect, ...]:
        result = transition(self._state, event, mode=self._mode, touch_threshold=self._touch_threshold)
        previous = self._state
        self._state = result.state
        if previous.dragging != result.state.dragging:
            self._log(
                "Magnifier %s (mode=%s event=%s)",
                "active" if result.state.dragging else "idle",
                self._mode.value,
                event.kind.value,
            )
        for effect in result.effects:
            if not self._apply(effect) and effect is Effect.START_CAPTURE:
                self._state = replace(self._state, capturing=False)
        return result.effects

    def _apply(self, effect: Effect) -> bool:
        try:
            if effect is Effect.SHOW_OVERLAY:
                self._set_visible(True)
            elif effect is Effect.HIDE_OVERLAY:
                self._set_visible(False)
            elif effect is Effect.START_CAPTURE:
                self._start_capture()
            elif effect is Effect.STOP_CAPTURE:
                self._stop_capture()
            elif effect is Effect.SCHEDULE_RECAPTURE:
                self._schedule_recapture()
        except Exception as exc:
            if self._failures is not None:
                self._failures.warning(effect.value, "Failed to apply %s: %s", effect.value, exc)
            else:
                self._log("Failed to apply %s: %s", effect.value, exc)
            return False
        if self._failures is not None:
            self._failures.clear(effect.value)
        return True
