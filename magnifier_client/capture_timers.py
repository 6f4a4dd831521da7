from __future__ import annotations

from typing import Callable, Optional

from magnifier_client.config import UpdateFrequency

AfterFn = Callable[[int, Callable[[], None]], object]
AfterCancelFn = Callable[[object], None]
LoggerFn = Callable[..., None]

PAGE_TIMER = "page"
REGION_TIMER = "region"


def _noop_log(message: str, *args: object) -> None:
    return None


class CaptureTimers:
    """Owns the self re-arming page/region capture timers and the layout debounce."""

    def __init__(
        self,
        frequency: UpdateFrequency,
        *,
        after: AfterFn,
        after_cancel: AfterCancelFn,
        logger: Optional[LoggerFn] = None,
    ) -> None:
        self._after = after
        self._after_cancel = after_cancel
        self._logger = logger or _noop_log
        self.page_interval_ms = max(1, int(frequency.main_snapshot_interval_ms))
        self.region_interval_ms = max(1, int(frequency.region_snapshot_interval_ms))
        self.debounce_ms = max(0, int(frequency.resize_debounce_ms))

        self._running = False
        self._handles: dict[str, object] = {}
        self._callbacks: dict[str, Callable[[], None]] = {}
        self._debounce_handles: dict[str, object] = {}

    @property
    def running(self) -> bool:
        return self._running

    def has_timer(self, key: str) -> bool:
        return key in self._handles

    def start_periodic(
        self,
        page_callback: Callable[[], None],
        region_callback: Optional[Callable[[], None]] = None,
    ) -> bool:
        """Arm the periodic timers; a no-op returning False when already running."""
        if self._running:
            return False
        self._running = True
        self._callbacks = {PAGE_TIMER: page_callback}
        if region_callback is not None:
            self._callbacks[REGION_TIMER] = region_callback
        for key in self._callbacks:
            self._arm(key)
        self._log(
            "Periodic capture started: page=%dms region=%s",
            self.page_interval_ms,
            f"{self.region_interval_ms}ms" if REGION_TIMER in self._callbacks else "off",
        )
        return True

    def stop_periodic(self) -> None:
        was_running = self._running
        self._running = False
        for key in list(self._handles):
            self._cancel_handle(self._handles.pop(key))
        self._callbacks = {}
        if was_running:
            self._log("Periodic capture stopped")

    def schedule_debounce(self, key: str, callback: Callable[[], None], *, delay_ms: int | None = None) -> object:
        existing = self._debounce_handles.pop(key, None)
        if existing is not None:
            self._cancel_handle(existing)
        delay = self.debounce_ms if delay_ms is None else delay_ms

        def _fire() -> None:
            self._debounce_handles.pop(key, None)
            callback()

        handle = self._after(delay, _fire)
        self._debounce_handles[key] = handle
        return handle

    def cancel_debounce(self, key: str) -> None:
        handle = self._debounce_handles.pop(key, None)
        if handle is not None:
            self._cancel_handle(handle)

    def cancel_all(self) -> None:
        self.stop_periodic()
        for key in list(self._debounce_handles):
            self.cancel_debounce(key)

    def _arm(self, key: str) -> None:
        interval = self.page_interval_ms if key == PAGE_TIMER else self.region_interval_ms
        self._handles[key] = self._after(interval, lambda: self._run(key))

    def _run(self, key: str) -> None:
        self._handles.pop(key, None)
        try:
            callback = self._callbacks.get(key)
            if callback is not None:
                callback()
        finally:
            if self._running and key in self._callbacks and key not in self._handles:
                self._arm(key)

    def _cancel_handle(self, handle: object) -> None:
        try:
            self._after_cancel(handle)
        except Exception:
            pass

    def _log(self, message: str, *args: object) -> None:
        try:
            self._logger(message, *args)
        except Exception:
            pass
