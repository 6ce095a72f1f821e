"""Playback engines behind one capability interface.

Every engine wraps a libVLC media player and exposes the same surface to the
dispatcher: ``create/attach/load/play/pause/destroy`` plus ``on(event, cb)``
subscriptions for readiness, errors and statistics. The three variants only
differ in how they tune libVLC and in how they recover from failures:

* ``SegmentedTsEngine``: continuous MPEG-TS with a deep stash buffer and a
  reload budget for flaky IPTV panels.
* ``AdaptiveHlsEngine``: HLS manifests, with ``start_load`` and
  ``recover_media_error`` hooks driven by the dispatcher.
* ``DirectElementEngine``: plain "hand the URL to the player" playback for
  progressive files and everything else.

libVLC fires its callbacks on its own threads; engines marshal them onto the
UI thread through ``scheduler.call_soon`` before touching any state.
"""

import logging
import os
import platform
import threading
import time
import urllib.error
import urllib.request
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple

from options import DEFAULT_BUFFER_BYTES, LATENCY_PROFILES, LatencyMode, LatencyProfile, UserSettings
from stream_types import StreamType


def _prime_vlc_search_path() -> None:
    """Make sure libvlc.dll is discoverable before importing python-vlc."""
    if os.name != "nt":
        return
    candidates = [
        os.path.join(os.environ.get("ProgramFiles(x86)", ""), "VideoLAN", "VLC"),
        os.path.join(os.environ.get("ProgramFiles", ""), "VideoLAN", "VLC"),
    ]
    seen = set()
    for path in candidates:
        if not path or path in seen:
            continue
        seen.add(path)
        if os.path.isfile(os.path.join(path, "libvlc.dll")):
            try:
                os.add_dll_directory(path)  # type: ignore[attr-defined]
            except Exception:
                os.environ["PATH"] = f"{path};" + os.environ.get("PATH", "")


_prime_vlc_search_path()

try:
    import vlc  # type: ignore
except Exception as _err:  # pragma: no cover - import guard
    vlc = None  # type: ignore
    _VLC_IMPORT_ERROR = _err
else:
    _VLC_IMPORT_ERROR = None

LOG = logging.getLogger(__name__)

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/123.0.0.0 Safari/537.36"
)
_DEFAULT_ACCEPT = (
    "application/x-mpegURL,application/vnd.apple.mpegurl,"
    "video/mp2t,video/*,*/*"
)
_STATS_INTERVAL_SECONDS = 1.0


class PlayerUnavailableError(RuntimeError):
    """Raised when libVLC or a media player object cannot be created."""


class PlayRejectedError(RuntimeError):
    """Raised by ``play`` when the engine refuses to start.

    ``not_allowed`` marks refusals that a muted start can get around, such as
    a missing audio output device.
    """

    def __init__(self, message: str, not_allowed: bool = False) -> None:
        super().__init__(message)
        self.not_allowed = not_allowed


class EngineEvent(Enum):
    READY = "ready"
    PLAYING = "playing"
    PAUSED = "paused"
    ENDED = "ended"
    ERROR = "error"
    STATISTICS = "statistics"
    DESTROYED = "destroyed"


class EngineErrorType(Enum):
    NETWORK = "network"
    MEDIA = "media"
    OTHER = "other"


@dataclass(frozen=True)
class EngineError:
    type: EngineErrorType
    details: str
    fatal: bool = True


@dataclass
class EngineConfig:
    stash_initial_size: int = DEFAULT_BUFFER_BYTES
    latency: LatencyProfile = field(default_factory=lambda: LATENCY_PROFILES[LatencyMode.HIGH])
    loading_timeout_ms: int = 120_000
    max_loading_retry: int = 10
    retry_delay_ms: int = 500
    headers: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_settings(cls, settings: UserSettings, referer: Optional[str] = None) -> "EngineConfig":
        headers = {"User-Agent": DEFAULT_USER_AGENT}
        if referer:
            headers["Referer"] = referer
        return cls(
            stash_initial_size=settings.buffer_target_bytes or DEFAULT_BUFFER_BYTES,
            latency=settings.latency,
            headers=headers,
        )

    @property
    def network_caching_ms(self) -> int:
        return int(self.latency.target_seconds * 1000)

    @property
    def min_buffer_ms(self) -> int:
        return int(self.latency.min_remain_seconds * 1000)


def _prepare_vlc_runtime() -> None:
    if vlc is None:
        detail = _VLC_IMPORT_ERROR or "python-vlc (libVLC) is not installed."
        raise PlayerUnavailableError(str(detail))


def create_instance():
    """Build the libVLC instance engines share. Raises ``PlayerUnavailableError``."""
    _prepare_vlc_runtime()
    try:
        instance = vlc.Instance(["--quiet", "--no-video-title-show", "--intf=dummy"])
    except Exception as err:
        LOG.warning("libVLC rejected tuning flags (%s); retrying with defaults.", err)
        instance = vlc.Instance()
    if not instance:
        raise PlayerUnavailableError("Failed to initialise libVLC instance.")
    return instance


def probe_failure(url: str, headers: Optional[Dict[str, str]] = None, timeout: float = 5.0) -> EngineError:
    """Work out why libVLC gave up on ``url`` with a quick HTTP request.

    libVLC's error event carries no detail, so the HTTP status (or socket
    error) is what separates network trouble from an undecodable stream.
    """
    if not url.lower().startswith(("http://", "https://")):
        return EngineError(EngineErrorType.MEDIA, "Media format error: the stream could not be opened")
    req_headers = {"User-Agent": DEFAULT_USER_AGENT, "Accept": _DEFAULT_ACCEPT}
    req_headers.update(headers or {})
    req = urllib.request.Request(url, headers=req_headers, method="GET")
    try:
        with urllib.request.urlopen(req, timeout=timeout) as resp:
            content_type = resp.getheader("Content-Type", "") or "unknown"
    except urllib.error.HTTPError as e:
        LOG.warning("Stream probe failed: HTTP %d %s for %s", e.code, e.reason, url)
        if e.code in (401, 403):
            return EngineError(EngineErrorType.NETWORK, f"HTTP {e.code} {e.reason}: access to the stream was refused")
        return EngineError(EngineErrorType.NETWORK, f"Network error: HTTP {e.code} {e.reason}")
    except urllib.error.URLError as e:
        reason = str(e.reason) if e.reason else "Unknown error"
        LOG.warning("Stream probe failed: %s for %s", reason, url)
        if "timed out" in reason.lower():
            return EngineError(EngineErrorType.NETWORK, f"Network timeout: {reason}")
        return EngineError(EngineErrorType.NETWORK, f"Network error: {reason}")
    except Exception as e:
        LOG.debug("Stream probe raised: %s", e)
        return EngineError(EngineErrorType.NETWORK, f"Network error: {e}")
    return EngineError(
        EngineErrorType.MEDIA,
        f"Media format error: libVLC could not decode the stream (Content-Type {content_type})",
    )


class VideoSurface:
    """The single output sink. Only one engine may be attached at a time."""

    def __init__(self, handle_getter: Optional[Callable[[], int]] = None) -> None:
        self._handle_getter = handle_getter
        self.attached = None

    def attach(self, engine: "PlaybackEngine") -> None:
        if self.attached is not None and self.attached is not engine:
            raise PlayerUnavailableError("Video surface is already in use by another engine")
        self.attached = engine

    def detach(self, engine: "PlaybackEngine") -> None:
        if self.attached is engine:
            self.attached = None

    def bind_player(self, player) -> None:
        handle = self._handle_getter() if self._handle_getter else None
        if not handle:
            return
        try:
            if platform.system() == "Windows":
                player.set_hwnd(handle)
            elif platform.system() == "Darwin":
                player.set_nsobject(int(handle))
            else:
                player.set_xwindow(handle)
        except Exception as err:
            LOG.warning("Failed to bind video surface: %s", err)


class PlaybackEngine:
    stream_type_label = "media"
    supports_fallback = False

    def __init__(self, config: EngineConfig, scheduler, instance=None) -> None:
        self.config = config
        self.scheduler = scheduler
        self.instance = instance
        self.player = None
        self.url: Optional[str] = None
        self.surface: Optional[VideoSurface] = None
        self.destroyed = False
        self._handlers: Dict[EngineEvent, List[Callable]] = {}
        self._ready_sent = False
        self._cache_percent = 0.0
        self._last_stats_ts = 0.0
        self._extra_options: List[str] = []
        self.started = False

    # ------------------------------------------------------------ events
    def on(self, event: EngineEvent, handler: Callable) -> None:
        self._handlers.setdefault(event, []).append(handler)

    def off(self, event: EngineEvent, handler: Callable) -> None:
        handlers = self._handlers.get(event, [])
        if handler in handlers:
            handlers.remove(handler)

    def emit(self, event: EngineEvent, *args) -> None:
        if self.destroyed and event is not EngineEvent.DESTROYED:
            return
        for handler in list(self._handlers.get(event, [])):
            try:
                handler(*args)
            except Exception:
                LOG.exception("Engine %s handler failed", event.value)

    # ------------------------------------------------------------ lifecycle
    def create(self) -> "PlaybackEngine":
        if self.instance is None:
            self.instance = create_instance()
        try:
            self.player = self.instance.media_player_new()
        except Exception as err:
            raise PlayerUnavailableError(f"Failed to initialise media player: {err}") from err
        if not self.player:
            raise PlayerUnavailableError("Could not create libVLC media player object.")
        self._attach_vlc_events()
        return self

    def attach(self, surface: VideoSurface) -> None:
        surface.attach(self)
        self.surface = surface
        surface.bind_player(self.player)

    def load(self, url: str) -> None:
        """Open ``url`` and start buffering without rendering."""
        self.started = False
        self._open(url, start_paused=True)

    def _open(self, url: str, start_paused: bool) -> None:
        self.url = url
        self._ready_sent = False
        self._cache_percent = 0.0
        media = self.instance.media_new(url)
        for option in self.media_options():
            media.add_option(option)
        for option in self._extra_options:
            media.add_option(option)
        if start_paused:
            media.add_option(":start-paused")
        self.player.set_media(media)
        LOG.debug("%s engine opening %s (start_paused=%s)", self.stream_type_label, url, start_paused)
        if self.player.play() == -1:
            self.scheduler.call_soon(
                self.emit, EngineEvent.ERROR, EngineError(EngineErrorType.OTHER, "libVLC failed to open the media")
            )

    def play(self, muted: bool = True) -> None:
        if self.destroyed or self.player is None:
            raise PlayRejectedError("Engine is not active")
        if not muted and not self._audio_output_available():
            raise PlayRejectedError("No audio output available for unmuted playback", not_allowed=True)
        self.started = True
        self.set_muted(muted)
        state = self._state_name()
        if state in ("ended", "stopped", "error", "nothingspecial"):
            if self.player.play() == -1:
                raise PlayRejectedError("libVLC refused to start playback")
        else:
            self.player.set_pause(0)

    def pause(self) -> None:
        if self.player is not None and not self.destroyed:
            self.player.set_pause(1)

    def set_muted(self, muted: bool) -> None:
        if self.player is not None:
            self.player.audio_set_mute(bool(muted))

    def destroy(self) -> None:
        if self.destroyed:
            return
        self.destroyed = True
        if self.surface is not None:
            self.surface.detach(self)
            self.surface = None
        if self.player is not None:
            self._detach_vlc_events()
            try:
                self.player.stop()
            except Exception as err:
                LOG.debug("Player stop during destroy failed: %s", err)
            try:
                self.player.release()
            except Exception as err:
                LOG.debug("Player release failed: %s", err)
            self.player = None
        self.emit(EngineEvent.DESTROYED)
        self._handlers.clear()

    # ------------------------------------------------------------ state
    @property
    def paused(self) -> bool:
        return self._state_name() in ("paused", "stopped", "ended", "error", "nothingspecial", "opening")

    @property
    def ended(self) -> bool:
        return self._state_name() == "ended"

    def current_time(self) -> float:
        if self.player is None:
            return 0.0
        try:
            ms = self.player.get_time()
        except Exception:
            return 0.0
        return max(0.0, ms / 1000.0) if ms is not None else 0.0

    def buffered_end(self) -> float:
        """Approximate end of buffered media from libVLC's cache fill level."""
        ahead = (self._cache_percent / 100.0) * (self.config.network_caching_ms / 1000.0)
        return self.current_time() + ahead

    def statistics(self) -> Dict[str, object]:
        stats: Dict[str, object] = {"total_bytes": 0, "height": 0}
        media = self.player.get_media() if self.player is not None else None
        if media is not None and vlc is not None:
            raw = vlc.MediaStats()
            try:
                ok = media.get_stats(raw)
            except Exception as err:
                LOG.debug("Media stats unavailable: %s", err)
                ok = False
            if ok:
                stats["total_bytes"] = int(getattr(raw, "read_bytes", 0) or 0)
                stats["dropped_frames"] = int(getattr(raw, "lost_pictures", 0) or 0)
        try:
            size = self.player.video_get_size(0) if self.player is not None else None
            if size:
                stats["height"] = int(size[1])
        except Exception as err:
            LOG.debug("Video size unavailable: %s", err)
        return stats

    # ------------------------------------------------------------ variant hooks
    def media_options(self) -> List[str]:
        cfg = self.config
        options = [
            f":network-caching={cfg.network_caching_ms}",
            f":live-caching={cfg.min_buffer_ms}",
            f":http-user-agent={cfg.headers.get('User-Agent', DEFAULT_USER_AGENT)}",
            ":http-reconnect",
        ]
        referer = cfg.headers.get("Referer")
        if referer:
            options.append(f":http-referrer={referer}")
        return options

    def handle_failure(self, error: EngineError) -> None:
        self.emit(EngineEvent.ERROR, error)

    def recovery_action(self, error: EngineError) -> Optional[Tuple[str, Callable[[], None]]]:
        """Return ``(status message, action)`` when the engine can self-heal."""
        return None

    # ------------------------------------------------------------ libVLC glue
    def _state_name(self) -> str:
        if self.player is None:
            return "stopped"
        try:
            state = self.player.get_state()
        except Exception:
            return "error"
        name = getattr(state, "name", None) or str(state).rsplit(".", 1)[-1]
        return str(name).lower()

    def _audio_output_available(self) -> bool:
        try:
            devices = self.player.audio_output_device_enum()
        except Exception:
            return True
        return devices is not None

    def _vlc_bindings(self):
        if vlc is None or self.player is None:
            return []
        et = vlc.EventType
        return [
            (et.MediaPlayerBuffering, self._on_vlc_buffering),
            (et.MediaPlayerPlaying, self._on_vlc_playing),
            (et.MediaPlayerPaused, self._on_vlc_paused),
            (et.MediaPlayerEndReached, self._on_vlc_end),
            (et.MediaPlayerEncounteredError, self._on_vlc_error),
            (et.MediaPlayerTimeChanged, self._on_vlc_time),
        ]

    def _attach_vlc_events(self) -> None:
        bindings = self._vlc_bindings()
        if not bindings:
            return
        manager = self.player.event_manager()
        for event_type, callback in bindings:
            manager.event_attach(event_type, callback)

    def _detach_vlc_events(self) -> None:
        bindings = self._vlc_bindings()
        if not bindings:
            return
        try:
            manager = self.player.event_manager()
            for event_type, _callback in bindings:
                manager.event_detach(event_type)
        except Exception as err:
            LOG.debug("Event detach failed: %s", err)

    # libVLC thread -> UI thread
    def _on_vlc_buffering(self, event) -> None:
        percent = float(getattr(getattr(event, "u", None), "new_cache", 100.0) or 0.0)
        self.scheduler.call_soon(self._handle_buffering, percent)

    def _on_vlc_playing(self, _event=None) -> None:
        self.scheduler.call_soon(self._handle_state, EngineEvent.PLAYING)

    def _on_vlc_paused(self, _event=None) -> None:
        self.scheduler.call_soon(self._handle_state, EngineEvent.PAUSED)

    def _on_vlc_end(self, _event=None) -> None:
        self.scheduler.call_soon(self._handle_state, EngineEvent.ENDED)

    def _on_vlc_time(self, _event=None) -> None:
        now = time.monotonic()
        if now - self._last_stats_ts < _STATS_INTERVAL_SECONDS:
            return
        self._last_stats_ts = now
        self.scheduler.call_soon(self._handle_stats)

    def _on_vlc_error(self, _event=None) -> None:
        url = self.url or ""
        headers = dict(self.config.headers)

        def _probe() -> None:
            error = probe_failure(url, headers)
            self.scheduler.call_soon(self._handle_failure_if_current, url, error)

        threading.Thread(target=_probe, daemon=True).start()

    def _handle_buffering(self, percent: float) -> None:
        if self.destroyed:
            return
        self._cache_percent = max(0.0, min(100.0, percent))
        if self._cache_percent >= 100.0:
            self._mark_ready()

    def _handle_state(self, event: EngineEvent) -> None:
        if self.destroyed:
            return
        if event in (EngineEvent.PAUSED, EngineEvent.PLAYING) and not self._ready_sent:
            # :start-paused parks on the first frame, which is our "can play".
            self._cache_percent = 100.0
            self._mark_ready()
        self.emit(event)

    def _handle_stats(self) -> None:
        if not self.destroyed:
            self.emit(EngineEvent.STATISTICS, self.statistics())

    def _handle_failure_if_current(self, url: str, error: EngineError) -> None:
        if self.destroyed or url != self.url:
            return
        LOG.warning("%s engine error (%s): %s", self.stream_type_label, error.type.value, error.details)
        self.handle_failure(error)

    def _mark_ready(self) -> None:
        if not self._ready_sent:
            self._ready_sent = True
            self.emit(EngineEvent.READY)


class SegmentedTsEngine(PlaybackEngine):
    """Live MPEG-TS: big stash buffer, no live-edge chasing, reload on drops."""

    stream_type_label = "MPEG-TS"

    def __init__(self, config: EngineConfig, scheduler, instance=None) -> None:
        super().__init__(config, scheduler, instance)
        self.load_retries = 0

    def load(self, url: str) -> None:
        self.load_retries = 0
        super().load(url)

    def media_options(self) -> List[str]:
        cfg = self.config
        options = super().media_options()
        options.extend([
            ":demux=ts",
            f":prefetch-buffer-size={max(1, cfg.stash_initial_size // 1024)}",
            f":ipv4-timeout={cfg.loading_timeout_ms}",
            ":clock-jitter=0",
            ":clock-synchro=0" if not cfg.latency.chasing else ":clock-synchro=1",
            ":drop-late-frames=0",
            ":skip-frames=0",
        ])
        return options

    def handle_failure(self, error: EngineError) -> None:
        if error.type is EngineErrorType.NETWORK and self.load_retries < self.config.max_loading_retry and self.url:
            self.load_retries += 1
            LOG.info("Reloading MPEG-TS stream [%d/%d]", self.load_retries, self.config.max_loading_retry)
            url = self.url
            retries = self.load_retries
            self.scheduler.call_later(self.config.retry_delay_ms, lambda: self._reload(url, retries))
            return
        details = error.details
        if error.type is EngineErrorType.NETWORK:
            details = f"Network error loading MPEG-TS stream: {details}"
        elif error.type is EngineErrorType.MEDIA:
            details = f"Media format error in MPEG-TS stream: {details}"
        super().handle_failure(EngineError(error.type, details, error.fatal))

    def _reload(self, url: str, retries: int) -> None:
        if self.destroyed or url != self.url:
            return
        self._open(url, start_paused=not self.started)
        self.load_retries = retries


class AdaptiveHlsEngine(PlaybackEngine):
    """HLS manifests through libVLC's adaptive demuxer."""

    stream_type_label = "HLS"
    MAX_BUFFER_SECONDS = 60

    def media_options(self) -> List[str]:
        cfg = self.config
        options = super().media_options()
        options.extend([
            ":demux=adaptive",
            ":adaptive-logic=predictive",
            f":adaptive-maxbuffer={self.MAX_BUFFER_SECONDS * 1000}",
            f":adaptive-livedelay={int(cfg.latency.target_seconds * 1000)}",
            ":adaptive-use-access",
        ])
        return options

    def recovery_action(self, error: EngineError) -> Optional[Tuple[str, Callable[[], None]]]:
        if error.type is EngineErrorType.NETWORK:
            return "Network error, attempting to recover...", self.start_load
        if error.type is EngineErrorType.MEDIA:
            return "Media error, attempting to recover...", self.recover_media_error
        return None

    def start_load(self) -> None:
        """Fetch the manifest again and carry on from the live edge."""
        if self.destroyed or not self.url:
            return
        LOG.info("Reloading HLS manifest %s", self.url)
        self._open(self.url, start_paused=not self.started)

    def recover_media_error(self) -> None:
        """Rebuild the decoder pipeline, falling back to software decoding."""
        if self.destroyed or not self.url:
            return
        LOG.info("Recovering HLS media pipeline for %s", self.url)
        if ":avcodec-hw=none" not in self._extra_options:
            self._extra_options.append(":avcodec-hw=none")
        position = self.current_time()
        self._open(self.url, start_paused=not self.started)
        if position > 0:
            try:
                self.player.set_time(int(position * 1000))
            except Exception as err:
                LOG.debug("Seek after recovery failed: %s", err)


class DirectElementEngine(PlaybackEngine):
    """Hands the URL straight to libVLC with only the common tuning."""

    stream_type_label = "direct"
    supports_fallback = True

    def media_options(self) -> List[str]:
        options = super().media_options()
        options.append(f":file-caching={self.config.network_caching_ms}")
        return options


ENGINE_FOR_TYPE = {
    StreamType.MPEGTS: SegmentedTsEngine,
    StreamType.HLS: AdaptiveHlsEngine,
}


def engine_class_for(stream_type: StreamType):
    return ENGINE_FOR_TYPE.get(stream_type, DirectElementEngine)
