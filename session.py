from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from options import UserSettings
from stream_types import StreamRequest, StreamType


class SessionStatus(Enum):
    IDLE = "Idle"
    LOADING = "Loading"
    PLAYING = "Playing"
    PAUSED = "Paused"
    FAILED = "Failed"


@dataclass
class PlaybackSession:
    request: StreamRequest
    engine: object
    status: SessionStatus = SessionStatus.LOADING

    @property
    def type(self) -> StreamType:
        return self.request.detected_type


@dataclass
class SessionContext:
    """Everything tied to one session's lifetime.

    Cancelling the context cancels every timer and periodic task it holds.
    """

    session: PlaybackSession
    settings: UserSettings
    playback_url: str
    timers: List[object] = field(default_factory=list)
    tasks: List[object] = field(default_factory=list)
    recovery_attempts: dict = field(default_factory=dict)
    play_attempts: int = 0
    prebuffering: bool = False
    rebuilding: bool = False
    unmuted: bool = False
    load_timer: Optional[object] = None
    cancelled: bool = False

    def track(self, handle):
        self.timers.append(handle)
        return handle

    def cancel(self) -> None:
        self.cancelled = True
        for handle in self.timers:
            handle.cancel()
        for task in self.tasks:
            task.cancel()
        self.timers.clear()
        self.tasks.clear()
        self.load_timer = None
