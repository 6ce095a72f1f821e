"""
Test doubles: a virtual-clock scheduler, libVLC-free engines and a recording view.
"""
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from engines import (
    AdaptiveHlsEngine,
    DirectElementEngine,
    EngineEvent,
    PlaybackEngine,
    SegmentedTsEngine,
)
from scheduler import TimerHandle
from stream_types import StreamType


class FakeScheduler:
    """Timers run only when the test advances the clock; call_soon runs inline."""

    def __init__(self):
        self.now = 0
        self._seq = 0
        self._timers = []

    def call_later(self, delay_ms, callback):
        handle = TimerHandle()
        self._seq += 1
        self._timers.append((self.now + int(delay_ms), self._seq, handle, callback))
        return handle

    def call_soon(self, callback, *args):
        callback(*args)

    def pending(self):
        return sum(1 for _due, _seq, handle, _cb in self._timers if handle.active)

    def advance(self, ms):
        target = self.now + int(ms)
        while True:
            live = [t for t in self._timers if t[2].active and t[0] <= target]
            if not live:
                break
            timer = min(live, key=lambda t: (t[0], t[1]))
            self._timers.remove(timer)
            due, _seq, handle, callback = timer
            self.now = due
            handle.active = False
            callback()
        self._timers = [t for t in self._timers if t[2].active]
        self.now = target


class FakeEngine(PlaybackEngine):
    """Engine with scripted behaviour; mixed into the real variants below."""

    def __init__(self, config, scheduler, instance=None):
        super().__init__(config, scheduler, instance)
        self.registry = None
        self.loaded = []
        self.reopened = []
        self.play_calls = []
        self.pause_calls = 0
        self.rejections = []
        self.position = 0.0
        self.buffer_ahead = 10.0
        self._paused = True
        self._ended = False

    def create(self):
        if self.registry is not None:
            self.registry.events.append(("create", self))
        return self

    def attach(self, surface):
        surface.attach(self)
        self.surface = surface

    def load(self, url):
        self.started = False
        self.url = url
        self.loaded.append(url)

    def _open(self, url, start_paused):
        self.url = url
        self.reopened.append((url, start_paused))

    def play(self, muted=True):
        self.play_calls.append(muted)
        if self.rejections:
            rejection = self.rejections.pop(0)
            if rejection is not None:
                raise rejection
        self.started = True
        self._paused = False

    def pause(self):
        self.pause_calls += 1
        self._paused = True

    def destroy(self):
        if self.destroyed:
            return
        if self.registry is not None:
            self.registry.events.append(("destroy", self))
        super().destroy()

    @property
    def paused(self):
        return self._paused

    @property
    def ended(self):
        return self._ended

    def current_time(self):
        return self.position

    def buffered_end(self):
        return self.position + self.buffer_ahead

    # helpers for tests
    def become_ready(self):
        self._mark_ready()

    def fail(self, error):
        self.emit(EngineEvent.ERROR, error)


class FakeTsEngine(FakeEngine, SegmentedTsEngine):
    pass


class FakeHlsEngine(FakeEngine, AdaptiveHlsEngine):
    pass


class FakeDirectEngine(FakeEngine, DirectElementEngine):
    pass


FAKE_FOR_TYPE = {
    StreamType.MPEGTS: FakeTsEngine,
    StreamType.HLS: FakeHlsEngine,
}


class EngineRegistry:
    """Engine factory that remembers every engine and lifecycle call."""

    def __init__(self):
        self.engines = []
        self.events = []
        self.configs = []
        self.rejections = []

    def __call__(self, stream_type, config, scheduler):
        engine = FAKE_FOR_TYPE.get(stream_type, FakeDirectEngine)(config, scheduler)
        engine.registry = self
        engine.rejections = list(self.rejections)
        self.engines.append(engine)
        self.configs.append(config)
        return engine

    @property
    def last(self):
        return self.engines[-1]

    def live(self):
        return [e for e in self.engines if not e.destroyed]


class FakeView:
    """Records every call the presenter makes."""

    def __init__(self):
        self.calls = []
        self.status = None
        self.banner = None
        self.overlay_visible = None
        self.fallback_url = None
        self.theme = None

    def set_status(self, message, icon):
        self.calls.append(("set_status", message, icon))
        self.status = message

    def show_error_banner(self, category, details):
        self.calls.append(("show_error_banner", category, details))
        self.banner = category

    def hide_error_banner(self):
        self.calls.append(("hide_error_banner",))
        self.banner = None

    def set_overlay_visible(self, visible):
        self.calls.append(("set_overlay_visible", visible))
        self.overlay_visible = visible

    def show_fallback(self, url):
        self.calls.append(("show_fallback", url))
        self.fallback_url = url

    def hide_fallback(self):
        self.calls.append(("hide_fallback",))
        self.fallback_url = None

    def apply_theme(self, theme):
        self.calls.append(("apply_theme", theme))
        self.theme = theme

    def statuses(self):
        return [c[1] for c in self.calls if c[0] == "set_status"]

    def count(self, name):
        return sum(1 for c in self.calls if c[0] == name)
