import logging
import os
import platform
import shutil
import subprocess
import threading
import time
from typing import List, Tuple

LOG = logging.getLogger(__name__)

SUPPORTED_PLAYERS = ("VLC", "MPV")

_WINDOWS_PATHS = {
    "VLC": [r"C:\Program Files\VideoLAN\VLC\vlc.exe", r"C:\Program Files (x86)\VideoLAN\VLC\vlc.exe"],
    "MPV": [r"C:\Program Files\mpv\mpv.exe", r"C:\Program Files (x86)\mpv\mpv.exe"],
}
_MAC_PATHS = {
    "VLC": ["/Applications/VLC.app/Contents/MacOS/VLC"],
    "MPV": ["/Applications/mpv.app/Contents/MacOS/mpv"],
}
_POSIX_COMMANDS = {"VLC": "vlc", "MPV": "mpv"}


class ExternalPlayerLauncher:
    """Hands a stream to a stand-alone player when the built-in one gives up."""

    def __init__(self):
        self._launch_guard_lock = threading.Lock()
        self._last_launch_ts = 0.0

    def launch(self, player_name: str, url: str, custom_path: str = "") -> Tuple[bool, str]:
        """
        Launches the specified external player with the given URL.
        Returns (success, error_message); a debounced call returns (False, "").
        """
        if not url:
            return False, "No stream URL to open."
        # Guard against accidental double-invocation
        with self._launch_guard_lock:
            now = time.time()
            if (now - self._last_launch_ts) < 0.75:
                return False, ""  # Debounced, nothing launched
            self._last_launch_ts = now

        if custom_path:
            exe = custom_path
            detected = "MPV" if "mpv" in os.path.basename(exe).lower() else "VLC"
            return self._spawn(self._argv_for(detected, exe, url))

        candidates = self._candidates(player_name)
        if not candidates:
            return False, f"{player_name} is not a supported external player."
        err = ""
        for exe in candidates:
            ok, err = self._spawn(self._argv_for(player_name, exe, url))
            if ok:
                LOG.info("Opened stream in %s", player_name)
                return True, ""
        return False, err or f"Could not locate {player_name} executable."

    def _candidates(self, player_name: str) -> List[str]:
        system = platform.system()
        if system == "Windows":
            return [p for p in _WINDOWS_PATHS.get(player_name, []) if os.path.exists(p)]
        if system == "Darwin":
            found = [p for p in _MAC_PATHS.get(player_name, []) if os.path.exists(p)]
            if found:
                return found
        cmd = _POSIX_COMMANDS.get(player_name)
        if not cmd:
            return []
        return [shutil.which(cmd) or cmd]

    def _argv_for(self, player_name: str, exe: str, url: str) -> list:
        if player_name == "VLC":
            # Single instance, replacing whatever it is playing.
            return [exe, "--one-instance", "--no-playlist-enqueue", url]
        if player_name == "MPV":
            return [exe, "--force-window=yes", "--no-terminal", url]
        return [exe, url]

    def _spawn(self, argv) -> Tuple[bool, str]:
        try:
            if platform.system() == "Windows":
                subprocess.Popen(argv)
            else:
                subprocess.Popen(argv, close_fds=True)
            return True, ""
        except FileNotFoundError:
            return False, f"Executable not found: {argv[0]}"
        except Exception as e:
            LOG.warning("Failed to launch %s: %s", argv[0], e)
            return False, str(e)
