import os
import sys
import json
import tempfile
import urllib.parse
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional
try:
    import wx  # type: ignore
    _HAS_WX = True
except ModuleNotFoundError:  # wxPython optional for headless helpers
    wx = None  # type: ignore
    _HAS_WX = False

CONFIG_FILE = "iptvplayer.conf"
_CONFIG_PATH = None  # Path of config last loaded/saved

DEFAULT_BUFFER_BYTES = 4 * 1024 * 1024
DEFAULT_PREBUFFER_MILLIS = 5000
THEME_DARK = "dark-mode"
THEME_LIGHT = "light-mode"
SHARE_SCHEME_BASE = "iptvplayer://"


class LatencyMode(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


@dataclass(frozen=True)
class LatencyProfile:
    chasing: bool
    target_seconds: float
    min_remain_seconds: float


LATENCY_PROFILES = {
    LatencyMode.LOW: LatencyProfile(chasing=True, target_seconds=2.0, min_remain_seconds=0.5),
    LatencyMode.MEDIUM: LatencyProfile(chasing=False, target_seconds=5.0, min_remain_seconds=2.0),
    LatencyMode.HIGH: LatencyProfile(chasing=False, target_seconds=10.0, min_remain_seconds=5.0),
}


@dataclass
class UserSettings:
    """Tuning applied to the next session; never to a running one."""

    buffer_target_bytes: int = DEFAULT_BUFFER_BYTES
    latency_mode: LatencyMode = LatencyMode.HIGH
    prebuffer_millis: int = DEFAULT_PREBUFFER_MILLIS

    @property
    def latency(self) -> LatencyProfile:
        return LATENCY_PROFILES[self.latency_mode]

    def snapshot(self) -> "UserSettings":
        return UserSettings(self.buffer_target_bytes, self.latency_mode, self.prebuffer_millis)

    def to_dict(self) -> Dict:
        return {
            "buffer_target_bytes": int(self.buffer_target_bytes),
            "latency_mode": self.latency_mode.value,
            "prebuffer_millis": int(self.prebuffer_millis),
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict]) -> "UserSettings":
        data = data or {}
        settings = cls()
        try:
            value = int(data.get("buffer_target_bytes", settings.buffer_target_bytes))
            if value > 0:
                settings.buffer_target_bytes = value
        except (TypeError, ValueError):
            pass
        try:
            settings.latency_mode = LatencyMode(str(data.get("latency_mode", settings.latency_mode.value)).lower())
        except ValueError:
            pass
        try:
            value = int(data.get("prebuffer_millis", settings.prebuffer_millis))
            if value >= 0:
                settings.prebuffer_millis = value
        except (TypeError, ValueError):
            pass
        return settings


def _log_error(message: str):
    """Log errors without requiring a wx.App (headless safe)."""
    app = None
    if _HAS_WX and hasattr(wx, "GetApp"):
        try:
            app = wx.GetApp()
        except Exception:
            app = None
    if _HAS_WX and app is not None:
        try:
            wx.LogError(message)
            return
        except Exception as e:
            sys.stderr.write(f"wx.LogError failed ({e}); ")
    sys.stderr.write(f"{message}\n")


def _is_writable_dir(path: str) -> bool:
    try:
        if not os.path.isdir(path):
            return False
        testfile = os.path.join(path, ".iptvplayer_write_test.tmp")
        with open(testfile, "w", encoding="utf-8") as f:
            f.write("test")
        os.remove(testfile)
        return True
    except Exception:
        return False

def get_app_dir():
    if getattr(sys, 'frozen', False):
        return os.path.dirname(sys.executable)
    return os.path.dirname(os.path.abspath(__file__))

def get_cwd_dir():
    try:
        return os.getcwd()
    except Exception:
        return None

def get_user_config_dir():
    """
    Gets the user-specific config directory, creating it if it doesn't exist.
    Uses wx.StandardPaths once a wx.App exists, otherwise the platform default.
    """
    app = None
    if _HAS_WX and hasattr(wx, "GetApp"):
        try:
            app = wx.GetApp()
        except Exception:
            app = None
    if _HAS_WX and app is not None:
        try:
            config_dir = wx.StandardPaths.Get().GetUserDataDir()
            os.makedirs(config_dir, exist_ok=True)
            return config_dir
        except Exception as e:
            _log_error(f"Could not use wx user config dir: {e}")

    if sys.platform == "win32":
        path = os.path.join(os.getenv('APPDATA', os.path.expanduser('~')), "IPTVPlayer")
    elif sys.platform == "darwin":
        path = os.path.join(os.path.expanduser('~/Library/Application Support'), "IPTVPlayer")
    else:  # linux and other unix
        path = os.path.join(os.getenv('XDG_CONFIG_HOME', os.path.expanduser('~/.config')), "IPTVPlayer")

    try:
        os.makedirs(path, exist_ok=True)
        return path
    except Exception:
        return tempfile.gettempdir()

def get_config_read_candidates():
    # App dir first so a portable install wins, then CWD, then the user dir.
    candidates = []
    for base in (get_app_dir(), get_cwd_dir(), get_user_config_dir()):
        if base:
            candidates.append(os.path.join(base, CONFIG_FILE))

    unique_candidates = []
    seen = set()
    for c in candidates:
        if c not in seen:
            unique_candidates.append(c)
            seen.add(c)
    return unique_candidates

def get_config_write_target():
    # Prefer writing back to the file that was loaded.
    if _CONFIG_PATH:
        parent = os.path.dirname(_CONFIG_PATH)
        if parent and _is_writable_dir(parent):
            return _CONFIG_PATH

    for base in (get_app_dir(), get_cwd_dir()):
        if base and _is_writable_dir(base):
            return os.path.join(base, CONFIG_FILE)

    return os.path.join(get_user_config_dir(), CONFIG_FILE)

def default_config() -> Dict:
    return {
        "theme": THEME_DARK,
        "player": UserSettings().to_dict(),
        "use_proxy": False,
        "proxy_port": 0,
        "share_base_url": SHARE_SCHEME_BASE,
        "external_player": "VLC",
        "last_url": "",
    }

def load_config() -> Dict:
    global _CONFIG_PATH
    default = default_config()
    for p in get_config_read_candidates():
        if os.path.exists(p):
            try:
                with open(p, "r", encoding="utf-8") as f:
                    data = json.load(f)
                if isinstance(data, dict):
                    for k, v in default.items():
                        data.setdefault(k, v)
                    if data.get("theme") not in (THEME_DARK, THEME_LIGHT):
                        data["theme"] = THEME_DARK
                    _CONFIG_PATH = p
                    return data
            except Exception as e:
                _log_error(f"Failed to load config from {p}: {e}")
                # Try the next candidate location.
    app_dir = get_app_dir()
    _CONFIG_PATH = os.path.join(app_dir, CONFIG_FILE) if app_dir else None
    return default

def save_config(cfg: Dict):
    global _CONFIG_PATH
    path = get_config_write_target()
    try:
        dir_path = os.path.dirname(path)
        if dir_path:
            os.makedirs(dir_path, exist_ok=True)
        tmp_path = path + ".tmp"
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(cfg, f, indent=2)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)
        _CONFIG_PATH = path
    except Exception as e:
        _log_error(f"Failed to save config to {path}: {e}")

def get_loaded_config_path() -> str:
    """Return the config path most recently loaded or saved, if known."""
    return _CONFIG_PATH or ""

def get_theme(cfg: Dict) -> str:
    theme = cfg.get("theme")
    return theme if theme in (THEME_DARK, THEME_LIGHT) else THEME_DARK

def set_theme(cfg: Dict, dark: bool) -> str:
    cfg["theme"] = THEME_DARK if dark else THEME_LIGHT
    save_config(cfg)
    return cfg["theme"]

def get_user_settings(cfg: Dict) -> UserSettings:
    return UserSettings.from_dict(cfg.get("player"))

def store_user_settings(cfg: Dict, settings: UserSettings) -> None:
    cfg["player"] = settings.to_dict()
    save_config(cfg)

def build_share_link(stream_url: str, base_url: str = SHARE_SCHEME_BASE) -> str:
    """Return ``base_url`` with the stream attached as its ``url`` parameter."""
    base = (base_url or SHARE_SCHEME_BASE).strip()
    base, _, fragment = base.partition("#")
    head, _, query = base.partition("?")
    params = [(k, v) for k, v in urllib.parse.parse_qsl(query, keep_blank_values=True) if k != "url"]
    params.append(("url", stream_url))
    link = f"{head}?{urllib.parse.urlencode(params)}"
    return f"{link}#{fragment}" if fragment else link

def parse_launch_argument(value: Optional[str]) -> Optional[str]:
    """Extract a stream URL from a share link, a ``?url=`` query or a bare URL."""
    if not value:
        return None
    value = value.strip()
    if value.startswith("?"):
        query = value[1:]
    elif urllib.parse.urlsplit(value).scheme == SHARE_SCHEME_BASE.split(":", 1)[0]:
        query = urllib.parse.urlsplit(value).query
    else:
        return value
    found = urllib.parse.parse_qs(query).get("url")
    if not found or not found[0].strip():
        return None
    return found[0].strip()


if _HAS_WX:
    class SettingsDialog(wx.Dialog):  # type: ignore[misc]
        _LATENCY_CHOICES = [
            ("Low (chase live edge)", LatencyMode.LOW),
            ("Medium", LatencyMode.MEDIUM),
            ("High (smoothest)", LatencyMode.HIGH),
        ]

        def __init__(self, parent, settings: UserSettings, use_proxy: bool = False):
            super().__init__(parent, title="Player Settings")
            sizer = wx.BoxSizer(wx.VERTICAL)
            grid = wx.FlexGridSizer(cols=2, vgap=6, hgap=8)

            grid.Add(wx.StaticText(self, label="Buffer size (KB):"), 0, wx.ALIGN_CENTER_VERTICAL)
            self.buffer_ctrl = wx.SpinCtrl(self, min=256, max=262144, initial=max(256, settings.buffer_target_bytes // 1024))
            self.buffer_ctrl.SetName("Buffer size in kilobytes")
            grid.Add(self.buffer_ctrl, 0, wx.EXPAND)

            grid.Add(wx.StaticText(self, label="Latency mode:"), 0, wx.ALIGN_CENTER_VERTICAL)
            self.latency_choice = wx.Choice(self, choices=[label for label, _ in self._LATENCY_CHOICES])
            modes = [mode for _, mode in self._LATENCY_CHOICES]
            self.latency_choice.SetSelection(modes.index(settings.latency_mode))
            grid.Add(self.latency_choice, 0, wx.EXPAND)

            grid.Add(wx.StaticText(self, label="Pre-buffer time (ms):"), 0, wx.ALIGN_CENTER_VERTICAL)
            self.prebuffer_ctrl = wx.SpinCtrl(self, min=0, max=60000, initial=settings.prebuffer_millis)
            self.prebuffer_ctrl.SetName("Pre-buffer time in milliseconds")
            grid.Add(self.prebuffer_ctrl, 0, wx.EXPAND)

            sizer.Add(grid, 0, wx.ALL | wx.EXPAND, 10)
            self.proxy_check = wx.CheckBox(self, label="Route streams through local proxy")
            self.proxy_check.SetValue(bool(use_proxy))
            sizer.Add(self.proxy_check, 0, wx.LEFT | wx.RIGHT | wx.BOTTOM, 10)
            sizer.Add(self.CreateButtonSizer(wx.OK | wx.CANCEL), 0, wx.ALL | wx.ALIGN_RIGHT, 5)
            self.SetSizerAndFit(sizer)

        def GetSettings(self) -> UserSettings:
            mode = self._LATENCY_CHOICES[max(0, self.latency_choice.GetSelection())][1]
            return UserSettings(
                buffer_target_bytes=self.buffer_ctrl.GetValue() * 1024,
                latency_mode=mode,
                prebuffer_millis=self.prebuffer_ctrl.GetValue(),
            )

        def GetUseProxy(self) -> bool:
            return self.proxy_check.GetValue()
else:
    class SettingsDialog:  # type: ignore[too-many-ancestors]
        def __init__(self, *_args, **_kwargs):
            raise RuntimeError("SettingsDialog requires wxPython. Install wxPython to use this dialog.")
