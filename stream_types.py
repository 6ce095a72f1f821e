import re
from dataclasses import dataclass
from enum import Enum
from typing import Tuple


class StreamType(Enum):
    HLS = "application/x-mpegURL"
    MP4 = "video/mp4"
    MPEGTS = "video/mp2t"
    WEBM = "video/webm"
    MKV = "video/x-matroska"
    FLV = "video/x-flv"
    RTMP = "rtmp/mp4"
    UNKNOWN = "application/octet-stream"


_FORMAT_NAMES = {
    StreamType.HLS: "HLS",
    StreamType.MP4: "MP4",
    StreamType.MPEGTS: "MPEG-TS",
    StreamType.WEBM: "WebM",
    StreamType.MKV: "MKV",
    StreamType.FLV: "FLV",
    StreamType.RTMP: "RTMP",
    StreamType.UNKNOWN: "unknown",
}

# Order matters: the first matching pattern wins.
_EXTENSION_PATTERNS: Tuple[Tuple[Tuple[str, ...], StreamType], ...] = (
    ((".m3u8", "application/x-mpegurl"), StreamType.HLS),
    ((".mp4", "video/mp4"), StreamType.MP4),
    ((".ts", "video/mp2t"), StreamType.MPEGTS),
    ((".webm", "video/webm"), StreamType.WEBM),
    ((".mkv",), StreamType.MKV),
    ((".flv", "video/x-flv"), StreamType.FLV),
    (("rtmp://",), StreamType.RTMP),
)

# Xtream-style endpoints such as http://host:8080/user/pass/12345
_IPTV_PORT_PATH_RE = re.compile(r":\d+/\w+/\w+/\d+")
_IPTV_PORT_HINTS = (":80/", ":8080/")


@dataclass(frozen=True)
class StreamRequest:
    url: str
    detected_type: StreamType

    @classmethod
    def from_url(cls, url: str) -> "StreamRequest":
        url = (url or "").strip()
        return cls(url=url, detected_type=detect(url))


def looks_like_iptv_endpoint(url: str) -> bool:
    lowered = (url or "").lower()
    if any(hint in lowered for hint in _IPTV_PORT_HINTS):
        return True
    return bool(_IPTV_PORT_PATH_RE.search(lowered))


def detect(url: str) -> StreamType:
    """Guess the container format of ``url`` from its text alone.

    The result is a hint for engine selection; the engine reporting an error
    is the real verdict. Anything unrecognised is treated as MPEG-TS since
    that is what unlabeled IPTV panels usually serve, which also means plain
    web pages end up on the TS engine.
    """
    lowered = (url or "").lower()
    for patterns, stream_type in _EXTENSION_PATTERNS:
        if any(p in lowered for p in patterns):
            return stream_type
    if looks_like_iptv_endpoint(lowered):
        return StreamType.MPEGTS
    return StreamType.MPEGTS


def mime_type(stream_type: StreamType) -> str:
    return stream_type.value


def format_name(stream_type: StreamType) -> str:
    return _FORMAT_NAMES.get(stream_type, "unknown")
