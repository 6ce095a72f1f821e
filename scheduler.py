import logging
from typing import Callable, Optional

try:
    import wx  # type: ignore
    _HAS_WX = True
except ModuleNotFoundError:  # wxPython optional for headless helpers
    wx = None  # type: ignore
    _HAS_WX = False

LOG = logging.getLogger(__name__)


class CancelToken:
    """Shared flag that ties timers to the lifetime of a playback session."""

    def __init__(self) -> None:
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True


class TimerHandle:
    def __init__(self, stop: Optional[Callable[[], None]] = None) -> None:
        self._stop = stop
        self.active = True

    def cancel(self) -> None:
        if not self.active:
            return
        self.active = False
        if self._stop is not None:
            try:
                self._stop()
            except Exception as err:  # wx may already have torn the timer down
                LOG.debug("Timer stop failed: %s", err)


class WxScheduler:
    """One-shot timers on the wx event loop."""

    def __init__(self) -> None:
        if not _HAS_WX:
            raise RuntimeError("wxPython is required for WxScheduler")

    def call_later(self, delay_ms: int, callback: Callable[[], None]) -> TimerHandle:
        handle = TimerHandle()

        def _fire() -> None:
            if not handle.active:
                return
            handle.active = False
            callback()

        timer = wx.CallLater(max(1, int(delay_ms)), _fire)
        handle._stop = timer.Stop
        return handle

    def call_soon(self, callback: Callable[..., None], *args) -> None:
        wx.CallAfter(callback, *args)


class PeriodicTask:
    """Re-arms a one-shot timer until cancelled or its token is cancelled."""

    def __init__(
        self,
        scheduler,
        interval_ms: int,
        callback: Callable[[], None],
        token: Optional[CancelToken] = None,
    ) -> None:
        self._scheduler = scheduler
        self._interval_ms = interval_ms
        self._callback = callback
        self._token = token or CancelToken()
        self._handle: Optional[TimerHandle] = None
        self._running = False

    @property
    def running(self) -> bool:
        return self._running and not self._token.cancelled

    def start(self) -> "PeriodicTask":
        if self._running:
            return self
        self._running = True
        self._arm()
        return self

    def cancel(self) -> None:
        self._running = False
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _arm(self) -> None:
        self._handle = self._scheduler.call_later(self._interval_ms, self._tick)

    def _tick(self) -> None:
        self._handle = None
        if not self.running:
            self._running = False
            return
        try:
            self._callback()
        except Exception:
            LOG.exception("Periodic task failed")
        if self.running:
            self._arm()
