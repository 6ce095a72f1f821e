"""Map playback failures onto user-facing error categories.

Errors coming out of libVLC, the HTTP preflight and the dispatcher's own
guards are heterogeneous: sometimes a message, sometimes only a numeric media
error code. ``classify`` folds all of them into one of seven fixed
categories, each carrying the copy shown in the error banner.
"""

from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import Optional, Tuple

from stream_types import StreamType


class ErrorKind(Enum):
    NETWORK = "NETWORK_ERROR"
    CORS = "CORS_ERROR"
    AUTH = "AUTH_ERROR"
    FORMAT = "FORMAT_ERROR"
    CODEC = "CODEC_ERROR"
    TIMEOUT = "TIMEOUT_ERROR"
    GENERIC = "GENERIC_ERROR"


class MediaErrorCode(IntEnum):
    ABORTED = 1
    NETWORK = 2
    DECODE = 3
    SRC_NOT_SUPPORTED = 4


@dataclass(frozen=True)
class Suggestion:
    icon: str
    text: str


@dataclass(frozen=True)
class ErrorCategory:
    kind: ErrorKind
    title: str
    message: str
    suggestions: Tuple[Suggestion, ...]


@dataclass(frozen=True)
class StreamError:
    """An error signal as reported by an engine or a guard timer."""

    message: str = ""
    code: Optional[int] = None

    @classmethod
    def from_exception(cls, exc: BaseException) -> "StreamError":
        code = getattr(exc, "code", None)
        if not isinstance(code, int):
            code = None
        return cls(message=str(exc), code=code)


ERROR_CATEGORIES = {
    ErrorKind.NETWORK: ErrorCategory(
        kind=ErrorKind.NETWORK,
        title="Network Connection Error",
        message="Unable to connect to the stream server. This could be due to network issues or server problems.",
        suggestions=(
            Suggestion("wifi", "Check your internet connection"),
            Suggestion("server", "The stream server might be temporarily unavailable"),
            Suggestion("clock", "Try again in a few minutes"),
            Suggestion("external-link", "Try opening the stream in VLC or another media player"),
        ),
    ),
    ErrorKind.FORMAT: ErrorCategory(
        kind=ErrorKind.FORMAT,
        title="Stream Format Not Supported",
        message="The player doesn't support this stream format or the stream is corrupted.",
        suggestions=(
            Suggestion("external-link", "Try opening the stream in VLC Media Player"),
            Suggestion("question", "Verify the stream URL is correct"),
            Suggestion("tools", "Check if the stream requires authentication"),
            Suggestion("sync", "Try routing the stream through the proxy"),
        ),
    ),
    ErrorKind.TIMEOUT: ErrorCategory(
        kind=ErrorKind.TIMEOUT,
        title="Stream Loading Timeout",
        message="The stream is taking too long to load. This might be due to slow connection or server issues.",
        suggestions=(
            Suggestion("hourglass", "Try increasing buffer size in settings"),
            Suggestion("tachometer", "Check your internet speed"),
            Suggestion("server", "The stream server might be overloaded"),
            Suggestion("sync", "Retry the stream"),
        ),
    ),
    ErrorKind.CORS: ErrorCategory(
        kind=ErrorKind.CORS,
        title="Cross-Origin Request Blocked",
        message="The stream server doesn't allow direct access due to cross-origin restrictions.",
        suggestions=(
            Suggestion("shield", "This is a security restriction from the stream provider"),
            Suggestion("sync", "Enable 'Route through proxy' in settings"),
            Suggestion("external-link", "Try opening the stream in VLC Media Player"),
            Suggestion("question", "Contact the stream provider for player-compatible links"),
        ),
    ),
    ErrorKind.AUTH: ErrorCategory(
        kind=ErrorKind.AUTH,
        title="Authentication Required",
        message="This stream requires authentication or the provided credentials are invalid.",
        suggestions=(
            Suggestion("key", "Check if the stream URL includes authentication parameters"),
            Suggestion("user-lock", "Verify your subscription or access permissions"),
            Suggestion("clock", "Authentication tokens may have expired"),
            Suggestion("external-link", "Try opening in VLC with proper credentials"),
        ),
    ),
    ErrorKind.CODEC: ErrorCategory(
        kind=ErrorKind.CODEC,
        title="Codec Not Supported",
        message="The stream uses audio/video codecs that the player can't decode.",
        suggestions=(
            Suggestion("play", "Try a different device"),
            Suggestion("external-link", "Use VLC Media Player for better codec support"),
            Suggestion("tools", "Check that your libVLC installation is complete"),
            Suggestion("question", "Contact the stream provider about codec compatibility"),
        ),
    ),
    ErrorKind.GENERIC: ErrorCategory(
        kind=ErrorKind.GENERIC,
        title="Stream Playback Failed",
        message="An unexpected error occurred while trying to play the stream.",
        suggestions=(
            Suggestion("sync", "Retry the stream"),
            Suggestion("external-link", "Try opening the stream in VLC Media Player"),
            Suggestion("question", "Check if the stream URL is valid and accessible"),
        ),
    ),
}

_NETWORK_WORDS = ("Network", "fetch", "NETWORK_ERROR", "ERR_NETWORK", "Failed to fetch")
_CORS_WORDS = ("CORS", "cross-origin", "Access-Control")
_AUTH_WORDS = ("401", "403", "Unauthorized", "Forbidden")
_FORMAT_WORDS = ("format", "codec", "MEDIA_ERR_SRC_NOT_SUPPORTED", "MEDIA_ERR_DECODE")
_TIMEOUT_WORDS = ("timeout", "TIMEOUT", "Loading timeout")

_CODE_KINDS = {
    MediaErrorCode.ABORTED: ErrorKind.GENERIC,
    MediaErrorCode.NETWORK: ErrorKind.NETWORK,
    MediaErrorCode.DECODE: ErrorKind.CODEC,
    MediaErrorCode.SRC_NOT_SUPPORTED: ErrorKind.FORMAT,
}


def _mentions(message: str, words: Tuple[str, ...]) -> bool:
    return any(word in message for word in words)


def classify_kind(error, stream_type: Optional[StreamType]) -> ErrorKind:
    if isinstance(error, BaseException):
        error = StreamError.from_exception(error)
    message = getattr(error, "message", "") or ""
    code = getattr(error, "code", None)

    if message:
        if _mentions(message, _NETWORK_WORDS):
            return ErrorKind.NETWORK
        if _mentions(message, _CORS_WORDS):
            return ErrorKind.CORS
        if _mentions(message, _AUTH_WORDS):
            return ErrorKind.AUTH
        if _mentions(message, _FORMAT_WORDS):
            return ErrorKind.FORMAT if stream_type == StreamType.MPEGTS else ErrorKind.CODEC
        if _mentions(message, _TIMEOUT_WORDS):
            return ErrorKind.TIMEOUT

    if code is not None:
        try:
            return _CODE_KINDS.get(MediaErrorCode(code), ErrorKind.GENERIC)
        except ValueError:
            return ErrorKind.GENERIC

    return ErrorKind.GENERIC


def classify(error, stream_type: Optional[StreamType]) -> ErrorCategory:
    """Return the banner category for ``error``. Never raises."""
    return ERROR_CATEGORIES[classify_kind(error, stream_type)]
