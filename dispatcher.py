"""Session ownership: pick an engine, drive it, and surface what happens.

The dispatcher owns at most one ``PlaybackSession``. Starting a session tears
down the previous engine before the next one is created, so the video surface
never has two engines attached. All timers belong to the session's
``SessionContext`` and die with it.
"""

import logging
from typing import Callable, Optional

from engines import (
    EngineConfig,
    EngineError,
    EngineEvent,
    PlayRejectedError,
    PlaybackEngine,
    VideoSurface,
    engine_class_for,
)
from error_classifier import StreamError, classify
from options import UserSettings
from presenter import StatusPresenter
from scheduler import PeriodicTask
from session import PlaybackSession, SessionContext, SessionStatus
from stream_types import StreamRequest, StreamType, format_name

LOG = logging.getLogger(__name__)

LOAD_TIMEOUT_MS = 30_000
BUFFER_CHECK_INTERVAL_MS = 1000
REBUILD_COOLDOWN_MS = 3000
LOW_WATERMARK_SECONDS = 1.0
MAX_RECOVERY_ATTEMPTS = 3
TIMEOUT_MESSAGE = "Loading timeout - stream took too long to load"


def default_engine_factory(instance=None) -> Callable[[StreamType, EngineConfig, object], PlaybackEngine]:
    def _factory(stream_type: StreamType, config: EngineConfig, scheduler) -> PlaybackEngine:
        return engine_class_for(stream_type)(config, scheduler, instance)
    return _factory


class PlaybackDispatcher:
    def __init__(
        self,
        surface: VideoSurface,
        presenter: StatusPresenter,
        scheduler,
        engine_factory: Optional[Callable[[StreamType, EngineConfig, object], PlaybackEngine]] = None,
        proxy=None,
        referer: Optional[str] = None,
        load_timeout_ms: int = LOAD_TIMEOUT_MS,
        buffer_check_ms: int = BUFFER_CHECK_INTERVAL_MS,
        rebuild_cooldown_ms: int = REBUILD_COOLDOWN_MS,
    ) -> None:
        self.surface = surface
        self.presenter = presenter
        self.scheduler = scheduler
        self.engine_factory = engine_factory or default_engine_factory()
        self.proxy = proxy
        self.referer = referer
        self.load_timeout_ms = load_timeout_ms
        self.buffer_check_ms = buffer_check_ms
        self.rebuild_cooldown_ms = rebuild_cooldown_ms
        self._ctx: Optional[SessionContext] = None
        self.last_request: Optional[StreamRequest] = None
        self.last_settings: Optional[UserSettings] = None
        self.last_use_proxy = False

    # ------------------------------------------------------------ public
    @property
    def session(self) -> Optional[PlaybackSession]:
        return self._ctx.session if self._ctx else None

    @property
    def context(self) -> Optional[SessionContext]:
        return self._ctx

    def play(self, request: StreamRequest, settings: UserSettings, use_proxy: bool = False) -> Optional[PlaybackSession]:
        """Start a new session for ``request``; progress arrives through events."""
        if not request.url:
            self.presenter.update_status("Please enter a stream URL", "warning")
            return None
        self.teardown()

        settings = settings.snapshot()
        self.last_request = request
        self.last_settings = settings
        self.last_use_proxy = use_proxy
        self.presenter.dismiss_error()
        self.presenter.hide_fallback()
        self.presenter.update_status("Loading stream...", "spinner")

        playback_url = request.url
        LOG.info("Starting %s session for %s", format_name(request.detected_type), request.url)

        config = EngineConfig.from_settings(settings, referer=self.referer)
        try:
            if use_proxy and self.proxy is not None:
                playback_url = self.proxy.proxied_url(request.url)
            engine = self.engine_factory(request.detected_type, config, self.scheduler)
            engine.create()
        except Exception as err:
            LOG.error("Could not start %s session: %s", format_name(request.detected_type), err)
            session = PlaybackSession(request, None, SessionStatus.FAILED)
            self._ctx = SessionContext(session, settings, playback_url)
            self._report_failure(self._ctx, StreamError.from_exception(err))
            return session

        session = PlaybackSession(request, engine)
        ctx = SessionContext(session, settings, playback_url)
        self._ctx = ctx
        self._wire(ctx, engine)
        ctx.load_timer = ctx.track(
            self.scheduler.call_later(self.load_timeout_ms, lambda: self._on_load_timeout(ctx))
        )
        self.presenter.update_status(
            f"Detected {format_name(request.detected_type)} stream format, initializing player...", "spinner"
        )
        self.presenter.sync_overlay(paused=True)
        try:
            engine.attach(self.surface)
            engine.load(playback_url)
        except Exception as err:
            LOG.error("Stream initialisation failed: %s", err)
            self._on_engine_failure(ctx, StreamError.from_exception(err))
        return session

    def retry(self, settings: Optional[UserSettings] = None) -> Optional[PlaybackSession]:
        if self.last_request is None:
            return None
        return self.play(self.last_request, settings or self.last_settings or UserSettings(), self.last_use_proxy)

    def restore(self, settings: Optional[UserSettings] = None) -> Optional[PlaybackSession]:
        """Leave the embedded fallback and try the direct player again."""
        if not self.presenter.fallback_active:
            return None
        self.presenter.hide_fallback()
        self.presenter.update_status("Original player restored", "info")
        return self.retry(settings)

    def stop(self) -> None:
        self.teardown()
        self.presenter.update_status("Stopped", "info")
        self.presenter.sync_overlay(paused=True)

    def teardown(self) -> None:
        """Destroy the current engine and every timer of its session. Idempotent."""
        ctx, self._ctx = self._ctx, None
        if ctx is None:
            return
        ctx.cancel()
        engine = ctx.session.engine
        if engine is not None:
            engine.destroy()
        if ctx.session.status is not SessionStatus.FAILED:
            ctx.session.status = SessionStatus.IDLE

    def toggle_pause(self) -> bool:
        """Play/pause from the overlay. Returns False when nothing is loaded."""
        ctx = self._ctx
        if ctx is None or ctx.session.engine is None or ctx.session.status in (SessionStatus.FAILED, SessionStatus.IDLE):
            return False
        engine = ctx.session.engine
        if engine.paused or engine.ended or ctx.session.status is SessionStatus.PAUSED:
            try:
                self._play_with_sound(ctx)
            except PlayRejectedError as err:
                LOG.warning("Resume from overlay failed: %s", err)
                return False
            self._mark_playing(ctx)
        else:
            engine.pause()
            ctx.session.status = SessionStatus.PAUSED
            self.presenter.update_status("Paused", "pause")
            self.presenter.sync_overlay(paused=True)
        return True

    # ------------------------------------------------------------ wiring
    def _wire(self, ctx: SessionContext, engine: PlaybackEngine) -> None:
        engine.on(EngineEvent.READY, lambda: self._on_ready(ctx))
        engine.on(EngineEvent.PLAYING, lambda: self._on_engine_playing(ctx))
        engine.on(EngineEvent.PAUSED, lambda: self._on_engine_paused(ctx))
        engine.on(EngineEvent.ENDED, lambda: self._on_engine_ended(ctx))
        engine.on(EngineEvent.ERROR, lambda error: self._on_engine_error(ctx, error))
        engine.on(EngineEvent.STATISTICS, lambda stats: self._on_statistics(ctx, stats))

    def _current(self, ctx: SessionContext) -> bool:
        return ctx is self._ctx and not ctx.cancelled

    def _clear_load_timer(self, ctx: SessionContext) -> None:
        if ctx.load_timer is not None:
            ctx.load_timer.cancel()
            ctx.load_timer = None

    # ------------------------------------------------------------ load phase
    def _on_ready(self, ctx: SessionContext) -> None:
        if not self._current(ctx) or ctx.session.status is not SessionStatus.LOADING:
            return
        self._clear_load_timer(ctx)
        if ctx.prebuffering or ctx.play_attempts:
            return
        ctx.prebuffering = True
        self.presenter.update_status("Pre-buffering stream (this may take a few seconds)...", "hourglass")
        ctx.track(self.scheduler.call_later(ctx.settings.prebuffer_millis, lambda: self._start_playback(ctx)))

    def _on_load_timeout(self, ctx: SessionContext) -> None:
        ctx.load_timer = None
        if not self._current(ctx) or ctx.session.status is not SessionStatus.LOADING:
            return
        LOG.warning("No ready signal after %d ms", self.load_timeout_ms)
        self._report_failure(ctx, StreamError(TIMEOUT_MESSAGE))

    def _start_playback(self, ctx: SessionContext) -> None:
        if not self._current(ctx):
            return
        engine = ctx.session.engine
        ctx.play_attempts += 1
        try:
            engine.play(muted=True)
        except PlayRejectedError as err:
            if err.not_allowed and ctx.play_attempts < 2:
                LOG.info("Muted start refused, retrying: %s", err)
                self._start_playback(ctx)
                return
            if err.not_allowed:
                self._prompt_manual_play(ctx)
                return
            self._on_engine_failure(ctx, StreamError.from_exception(err))
            return
        self._mark_playing(ctx)
        self._try_unmute(ctx)

    def _try_unmute(self, ctx: SessionContext) -> None:
        engine = ctx.session.engine
        try:
            engine.play(muted=False)
        except PlayRejectedError as err:
            LOG.info("Unmuted playback refused: %s", err)
            try:
                engine.play(muted=True)
            except PlayRejectedError:
                self._prompt_manual_play(ctx)
                return
            self.presenter.update_status("Stream is playing (muted). Use the volume control to unmute.", "play")
            return
        ctx.unmuted = True

    def _play_with_sound(self, ctx: SessionContext) -> None:
        engine = ctx.session.engine
        try:
            engine.play(muted=False)
            ctx.unmuted = True
        except PlayRejectedError as err:
            if not err.not_allowed:
                raise
            engine.play(muted=True)

    def _prompt_manual_play(self, ctx: SessionContext) -> None:
        ctx.session.status = SessionStatus.PAUSED
        self.presenter.update_status("Stream loaded. Click the play button to start playback.", "play")
        self.presenter.sync_overlay(paused=True)

    def _mark_playing(self, ctx: SessionContext) -> None:
        ctx.session.status = SessionStatus.PLAYING
        self.presenter.update_status("Stream is playing", "play")
        self.presenter.sync_overlay(paused=False)
        if not ctx.tasks:
            task = PeriodicTask(self.scheduler, self.buffer_check_ms, lambda: self._check_buffer(ctx))
            ctx.tasks.append(task.start())

    # ------------------------------------------------------------ buffer health
    def _check_buffer(self, ctx: SessionContext) -> None:
        if not self._current(ctx) or ctx.rebuilding or ctx.session.status is not SessionStatus.PLAYING:
            return
        engine = ctx.session.engine
        if engine.paused:
            return
        margin = engine.buffered_end() - engine.current_time()
        if margin >= LOW_WATERMARK_SECONDS:
            return
        LOG.debug("Buffer margin %.2fs below %.1fs; pausing to rebuild", margin, LOW_WATERMARK_SECONDS)
        ctx.rebuilding = True
        engine.pause()
        self.presenter.update_status("Rebuilding buffer...", "hourglass")
        ctx.track(self.scheduler.call_later(self.rebuild_cooldown_ms, lambda: self._resume_after_rebuild(ctx)))

    def _resume_after_rebuild(self, ctx: SessionContext) -> None:
        if not self._current(ctx):
            return
        ctx.rebuilding = False
        try:
            ctx.session.engine.play(muted=not ctx.unmuted)
        except PlayRejectedError as err:
            LOG.error("Error resuming after rebuild: %s", err)
            return
        self.presenter.update_status("Resuming playback", "play")
        self.presenter.sync_overlay(paused=False)

    # ------------------------------------------------------------ engine events
    def _on_engine_playing(self, ctx: SessionContext) -> None:
        if not self._current(ctx) or ctx.session.status is SessionStatus.LOADING:
            return
        if ctx.session.status is SessionStatus.PAUSED:
            ctx.session.status = SessionStatus.PLAYING
        self.presenter.sync_overlay(paused=False)

    def _on_engine_paused(self, ctx: SessionContext) -> None:
        if not self._current(ctx) or ctx.session.status is SessionStatus.LOADING:
            return
        if ctx.session.status is SessionStatus.PLAYING and not ctx.rebuilding:
            ctx.session.status = SessionStatus.PAUSED
        self.presenter.sync_overlay(paused=True)

    def _on_engine_ended(self, ctx: SessionContext) -> None:
        if not self._current(ctx):
            return
        ctx.session.status = SessionStatus.PAUSED
        self.presenter.update_status("Stream ended", "info")
        self.presenter.sync_overlay(paused=True, ended=True)

    def _on_statistics(self, ctx: SessionContext, stats: dict) -> None:
        if not self._current(ctx) or ctx.rebuilding or ctx.session.status is not SessionStatus.PLAYING:
            return
        height = int(stats.get("height") or 0)
        total = int(stats.get("total_bytes") or 0)
        if ctx.session.type is StreamType.HLS and height:
            self.presenter.update_status(f"Playing: {height}p resolution", "play")
        elif total > 0:
            self.presenter.update_status(f"Playing: Buffer size {total / (1024 * 1024):.2f}MB", "play")

    def _on_engine_error(self, ctx: SessionContext, error: EngineError) -> None:
        if not self._current(ctx):
            return
        if not error.fatal:
            LOG.warning("Non-fatal %s error: %s", error.type.value, error.details)
            return
        engine = ctx.session.engine
        recovery = engine.recovery_action(error)
        attempts = ctx.recovery_attempts.get(error.type, 0)
        if recovery is not None and attempts < MAX_RECOVERY_ATTEMPTS:
            ctx.recovery_attempts[error.type] = attempts + 1
            message, action = recovery
            LOG.info("%s [%d/%d]", message, attempts + 1, MAX_RECOVERY_ATTEMPTS)
            self.presenter.update_status(message, "sync")
            action()
            return
        self._on_engine_failure(ctx, StreamError(error.details))

    def _on_engine_failure(self, ctx: SessionContext, error: StreamError) -> None:
        engine = ctx.session.engine
        if engine is not None and engine.supports_fallback:
            self._fall_back(ctx, error)
            return
        self._report_failure(ctx, error)

    # ------------------------------------------------------------ failure paths
    def _report_failure(self, ctx: SessionContext, error: StreamError) -> None:
        LOG.error("Stream error: %s", error.message or error.code)
        category = classify(error, ctx.session.type)
        ctx.session.status = SessionStatus.FAILED
        self._shutdown_engine(ctx)
        self.presenter.update_status("Stream failed to load", "warning")
        self.presenter.show_error(category, error.message or None)
        self.presenter.sync_overlay(paused=True)

    def _fall_back(self, ctx: SessionContext, error: StreamError) -> None:
        LOG.warning("Direct playback failed (%s); switching to embedded view", error.message)
        ctx.session.status = SessionStatus.FAILED
        self._shutdown_engine(ctx)
        self.presenter.update_status("Trying alternative playback method...", "sync")
        self.presenter.show_fallback(ctx.session.request.url)
        self.presenter.update_status("Using alternative player for stream", "play")

    def _shutdown_engine(self, ctx: SessionContext) -> None:
        ctx.cancel()
        engine = ctx.session.engine
        if engine is not None:
            engine.destroy()
