import logging
from typing import Dict, Optional

import wx

try:
    import wx.html2  # type: ignore
    _HAS_WEBVIEW = True
except ImportError:  # some wx builds ship without a web backend
    _HAS_WEBVIEW = False

from dispatcher import PlaybackDispatcher, default_engine_factory
from engines import PlayerUnavailableError, VideoSurface, create_instance
from error_classifier import ErrorCategory
from external_player import ExternalPlayerLauncher, SUPPORTED_PLAYERS
from options import (
    SettingsDialog,
    THEME_DARK,
    build_share_link,
    get_theme,
    get_user_settings,
    load_config,
    save_config,
    set_theme,
    store_user_settings,
)
from presenter import StatusPresenter
from scheduler import WxScheduler
from session import SessionStatus
from stream_proxy import get_proxy
from stream_types import StreamRequest

LOG = logging.getLogger(__name__)

# Pointer hover alone does not hold the banner open.
BANNER_TOUCH_EVENTS = (wx.EVT_LEFT_DOWN, wx.EVT_KEY_DOWN)

_ICON_GLYPHS: Dict[str, str] = {
    "info": "ℹ",
    "warning": "⚠",
    "spinner": "⌛",
    "hourglass": "⏳",
    "play": "▶",
    "pause": "⏸",
    "sync": "↻",
    "wifi": "\U0001f4f6",
    "server": "\U0001f5a5",
    "external-link": "↗",
    "clock": "⏰",
    "key": "\U0001f511",
    "shield": "\U0001f6e1",
    "user-lock": "\U0001f512",
    "tools": "\U0001f527",
    "tachometer": "⏲",
    "question": "?",
}

_DARK_COLOURS = {
    "bg": wx.Colour(24, 24, 27),
    "panel": wx.Colour(39, 39, 42),
    "fg": wx.Colour(228, 228, 231),
    "banner": wx.Colour(127, 29, 29),
}
_LIGHT_COLOURS = {
    "bg": wx.Colour(250, 250, 250),
    "panel": wx.Colour(235, 235, 240),
    "fg": wx.Colour(24, 24, 27),
    "banner": wx.Colour(254, 226, 226),
}


def _glyph(icon: str) -> str:
    return _ICON_GLYPHS.get(icon, "•")


class PlayerFrame(wx.Frame):
    """Main window: URL entry, video area, status line and error banner."""

    def __init__(self, config: Optional[Dict] = None):
        super().__init__(None, title="IPTV Stream Player", size=(960, 640))
        self.config = config if config is not None else load_config()
        self.settings = get_user_settings(self.config)
        self.use_proxy = bool(self.config.get("use_proxy", False))
        self.launcher = ExternalPlayerLauncher()
        self._webview = None

        self._build_ui()
        self._build_menu_bar()

        self.scheduler = WxScheduler()
        self.presenter = StatusPresenter(self, self.scheduler)
        self.surface = VideoSurface(self.video_panel.GetHandle)
        try:
            instance = create_instance()
        except PlayerUnavailableError as err:
            # Each load will report the problem through the error banner.
            LOG.error("libVLC unavailable: %s", err)
            instance = None
        proxy = get_proxy()
        port = self.config.get("proxy_port") or 0
        if not proxy.running and port:
            proxy.port = int(port)
        self.dispatcher = PlaybackDispatcher(
            self.surface,
            self.presenter,
            self.scheduler,
            engine_factory=default_engine_factory(instance),
            proxy=proxy,
        )

        self.presenter.apply_theme(get_theme(self.config))
        self.presenter.update_status("Enter a stream URL and press Load", "info")
        self.presenter.sync_overlay(paused=True)
        self.url_ctrl.SetValue(self.config.get("last_url", "") or "")

        self.Bind(wx.EVT_CLOSE, self._on_close)
        self.Centre()
        self.Show()
        wx.CallAfter(self.url_ctrl.SetFocus)

    # ------------------------------------------------------------------ layout
    def _build_ui(self) -> None:
        self.root_panel = wx.Panel(self)
        main_sizer = wx.BoxSizer(wx.VERTICAL)

        url_row = wx.BoxSizer(wx.HORIZONTAL)
        self.url_ctrl = wx.TextCtrl(self.root_panel, style=wx.TE_PROCESS_ENTER)
        self.url_ctrl.SetName("Stream URL")
        self.url_ctrl.SetHint("https://example.com/live/stream.m3u8")
        self.url_ctrl.Bind(wx.EVT_TEXT_ENTER, lambda _evt: self.load_stream())
        self.load_btn = wx.Button(self.root_panel, label="Load")
        self.load_btn.Bind(wx.EVT_BUTTON, lambda _evt: self.load_stream())
        self.settings_btn = wx.Button(self.root_panel, label="Settings")
        self.settings_btn.Bind(wx.EVT_BUTTON, self._on_settings)
        self.theme_btn = wx.Button(self.root_panel, label="Light Mode")
        self.theme_btn.SetName("Toggle colour theme")
        self.theme_btn.Bind(wx.EVT_BUTTON, self._on_toggle_theme)
        url_row.Add(self.url_ctrl, 1, wx.ALL | wx.EXPAND, 5)
        url_row.Add(self.load_btn, 0, wx.ALL, 5)
        url_row.Add(self.settings_btn, 0, wx.ALL, 5)
        url_row.Add(self.theme_btn, 0, wx.ALL, 5)
        main_sizer.Add(url_row, 0, wx.EXPAND)

        self.banner_panel = self._build_banner(self.root_panel)
        main_sizer.Add(self.banner_panel, 0, wx.EXPAND | wx.LEFT | wx.RIGHT, 5)

        self.video_panel = wx.Panel(self.root_panel)
        self.video_panel.SetBackgroundColour(wx.BLACK)
        self.video_panel.Bind(wx.EVT_LEFT_DCLICK, lambda _evt: self._on_overlay())
        main_sizer.Add(self.video_panel, 1, wx.EXPAND | wx.ALL, 5)

        self.fallback_panel = wx.Panel(self.root_panel)
        fb_sizer = wx.BoxSizer(wx.VERTICAL)
        self.restore_btn = wx.Button(self.fallback_panel, label="Restore Original Player")
        self.restore_btn.Bind(wx.EVT_BUTTON, lambda _evt: self.dispatcher.restore(self.settings))
        fb_sizer.Add(self.restore_btn, 0, wx.ALL, 5)
        self.fallback_panel.SetSizer(fb_sizer)
        self.fallback_panel.Hide()
        main_sizer.Add(self.fallback_panel, 1, wx.EXPAND | wx.ALL, 5)

        controls = wx.BoxSizer(wx.HORIZONTAL)
        self.overlay_btn = wx.Button(self.root_panel, label="▶ Play")
        self.overlay_btn.SetName("Play")
        self.overlay_btn.Bind(wx.EVT_BUTTON, lambda _evt: self._on_overlay())
        self.pause_btn = wx.Button(self.root_panel, label="Pause")
        self.pause_btn.Bind(wx.EVT_BUTTON, lambda _evt: self.dispatcher.toggle_pause())
        self.stop_btn = wx.Button(self.root_panel, label="Stop")
        self.stop_btn.Bind(wx.EVT_BUTTON, lambda _evt: self.dispatcher.stop())
        self.copy_btn = wx.Button(self.root_panel, label="Copy URL")
        self.copy_btn.Bind(wx.EVT_BUTTON, self._on_copy_url)
        self.share_btn = wx.Button(self.root_panel, label="Share")
        self.share_btn.Bind(wx.EVT_BUTTON, self._on_share)
        self.external_btn = wx.Button(self.root_panel, label="Open in External Player")
        self.external_btn.Bind(wx.EVT_BUTTON, lambda _evt: self.open_external())
        for btn in (self.overlay_btn, self.pause_btn, self.stop_btn, self.copy_btn, self.share_btn, self.external_btn):
            controls.Add(btn, 0, wx.ALL, 5)
        main_sizer.Add(controls, 0, wx.EXPAND)

        status_row = wx.BoxSizer(wx.HORIZONTAL)
        self.status_icon = wx.StaticText(self.root_panel, label=_glyph("info"))
        self.status_label = wx.StaticText(self.root_panel, label="")
        self.status_label.SetName("Player status")
        status_row.Add(self.status_icon, 0, wx.ALL | wx.ALIGN_CENTER_VERTICAL, 5)
        status_row.Add(self.status_label, 1, wx.ALL | wx.ALIGN_CENTER_VERTICAL, 5)
        main_sizer.Add(status_row, 0, wx.EXPAND)

        self.root_panel.SetSizer(main_sizer)
        self.SetMinSize((640, 420))

    def _build_banner(self, parent) -> wx.Panel:
        panel = wx.Panel(parent)
        sizer = wx.BoxSizer(wx.VERTICAL)
        self.banner_title = wx.StaticText(panel, label="")
        font = self.banner_title.GetFont()
        font.SetWeight(wx.FONTWEIGHT_BOLD)
        self.banner_title.SetFont(font)
        self.banner_message = wx.StaticText(panel, label="")
        self.banner_suggestions = wx.StaticText(panel, label="")
        self.banner_details = wx.StaticText(panel, label="")
        buttons = wx.BoxSizer(wx.HORIZONTAL)
        retry_btn = wx.Button(panel, label="Retry")
        retry_btn.Bind(wx.EVT_BUTTON, self._on_banner_retry)
        external_btn = wx.Button(panel, label="Open in External Player")
        external_btn.Bind(wx.EVT_BUTTON, self._on_banner_external)
        dismiss_btn = wx.Button(panel, label="Dismiss")
        dismiss_btn.Bind(wx.EVT_BUTTON, lambda _evt: self.presenter.dismiss_error())
        buttons.Add(retry_btn, 0, wx.ALL, 3)
        buttons.Add(external_btn, 0, wx.ALL, 3)
        buttons.Add(dismiss_btn, 0, wx.ALL, 3)
        for ctrl in (self.banner_title, self.banner_message, self.banner_suggestions, self.banner_details):
            sizer.Add(ctrl, 0, wx.LEFT | wx.RIGHT | wx.TOP, 6)
        sizer.Add(buttons, 0, wx.ALL, 3)
        panel.SetSizer(sizer)
        for window in (panel, self.banner_title, self.banner_message, self.banner_suggestions):
            for event in BANNER_TOUCH_EVENTS:
                window.Bind(event, self._on_banner_touched)
        panel.Hide()
        return panel

    def _build_menu_bar(self) -> None:
        menu_bar = wx.MenuBar()
        stream_menu = wx.Menu()
        m_load = stream_menu.Append(wx.ID_ANY, "Load\tCtrl+L")
        m_toggle = stream_menu.Append(wx.ID_ANY, "Play/Pause\tCtrl+P")
        m_stop = stream_menu.Append(wx.ID_ANY, "Stop\tCtrl+S")
        stream_menu.AppendSeparator()
        m_copy = stream_menu.Append(wx.ID_ANY, "Copy URL\tCtrl+Shift+C")
        m_share = stream_menu.Append(wx.ID_ANY, "Copy Share Link\tCtrl+Shift+L")
        stream_menu.AppendSeparator()
        m_exit = stream_menu.Append(wx.ID_EXIT, "Exit\tCtrl+Q")

        options_menu = wx.Menu()
        m_settings = options_menu.Append(wx.ID_ANY, "Player Settings...")
        self.proxy_item = options_menu.AppendCheckItem(wx.ID_ANY, "Route Through Proxy")
        self.proxy_item.Check(self.use_proxy)
        external_menu = wx.Menu()
        current = self.config.get("external_player", "VLC")
        for name in SUPPORTED_PLAYERS:
            item = external_menu.AppendRadioItem(wx.ID_ANY, name)
            item.Check(name == current)
            self.Bind(wx.EVT_MENU, lambda _evt, n=name: self._select_external(n), item)
        options_menu.AppendSubMenu(external_menu, "External Player")

        self.Bind(wx.EVT_MENU, lambda _evt: self.load_stream(), m_load)
        self.Bind(wx.EVT_MENU, lambda _evt: self.dispatcher.toggle_pause(), m_toggle)
        self.Bind(wx.EVT_MENU, lambda _evt: self.dispatcher.stop(), m_stop)
        self.Bind(wx.EVT_MENU, self._on_copy_url, m_copy)
        self.Bind(wx.EVT_MENU, self._on_share, m_share)
        self.Bind(wx.EVT_MENU, lambda _evt: self.Close(), m_exit)
        self.Bind(wx.EVT_MENU, self._on_settings, m_settings)
        self.Bind(wx.EVT_MENU, self._on_toggle_proxy, self.proxy_item)

        menu_bar.Append(stream_menu, "&Stream")
        menu_bar.Append(options_menu, "&Options")
        self.SetMenuBar(menu_bar)

    # ------------------------------------------------------------------ actions
    def load_stream(self, url: Optional[str] = None) -> None:
        if url is not None:
            self.url_ctrl.SetValue(url)
        request = StreamRequest.from_url(self.url_ctrl.GetValue())
        if request.url and request.url != self.config.get("last_url"):
            self.config["last_url"] = request.url
            save_config(self.config)
        self.dispatcher.play(request, self.settings, use_proxy=self.use_proxy)

    def open_external(self) -> None:
        url = self.url_ctrl.GetValue().strip()
        player = self.config.get("external_player", "VLC")
        ok, err = self.launcher.launch(player, url, self.config.get("custom_player_path", ""))
        if ok:
            self.presenter.update_status(f"Opened stream in {player}", "external-link")
        elif err:
            wx.MessageBox(err, "External Player", wx.OK | wx.ICON_ERROR, self)

    def _on_overlay(self) -> None:
        session = self.dispatcher.session
        if session is None or session.status in (SessionStatus.FAILED, SessionStatus.IDLE):
            self.load_stream()
            return
        self.dispatcher.toggle_pause()

    def _on_settings(self, _evt=None) -> None:
        dlg = SettingsDialog(self, self.settings, self.use_proxy)
        try:
            if dlg.ShowModal() != wx.ID_OK:
                return
            self.settings = dlg.GetSettings()
            self.use_proxy = dlg.GetUseProxy()
        finally:
            dlg.Destroy()
        self.proxy_item.Check(self.use_proxy)
        self.config["use_proxy"] = self.use_proxy
        store_user_settings(self.config, self.settings)
        self.presenter.update_status("Settings applied", "info")
        # New settings only take effect on a fresh session.
        if self.dispatcher.session is not None and self.url_ctrl.GetValue().strip():
            self.load_stream()

    def _on_toggle_proxy(self, _evt=None) -> None:
        self.use_proxy = self.proxy_item.IsChecked()
        self.config["use_proxy"] = self.use_proxy
        save_config(self.config)

    def _select_external(self, name: str) -> None:
        self.config["external_player"] = name
        save_config(self.config)

    def _on_toggle_theme(self, _evt=None) -> None:
        dark = get_theme(self.config) != THEME_DARK
        self.presenter.apply_theme(set_theme(self.config, dark))

    def _copy_to_clipboard(self, text: str) -> bool:
        if not wx.TheClipboard.Open():
            LOG.warning("Clipboard is busy")
            return False
        try:
            wx.TheClipboard.SetData(wx.TextDataObject(text))
        finally:
            wx.TheClipboard.Close()
        return True

    def _on_copy_url(self, _evt=None) -> None:
        url = self.url_ctrl.GetValue().strip()
        if not url:
            self.presenter.update_status("Please enter a stream URL", "warning")
            return
        if self._copy_to_clipboard(url):
            self.presenter.update_status("Stream URL copied to clipboard", "info")

    def _on_share(self, _evt=None) -> None:
        url = self.url_ctrl.GetValue().strip()
        if not url:
            self.presenter.update_status("Please enter a stream URL", "warning")
            return
        link = build_share_link(url, self.config.get("share_base_url", ""))
        if self._copy_to_clipboard(link):
            self.presenter.update_status("Share link copied to clipboard", "info")

    def _on_banner_touched(self, evt) -> None:
        self.presenter.note_banner_interaction()
        evt.Skip()

    def _on_banner_retry(self, _evt=None) -> None:
        self.presenter.note_banner_interaction()
        self.dispatcher.retry(self.settings)

    def _on_banner_external(self, _evt=None) -> None:
        self.presenter.note_banner_interaction()
        self.open_external()

    def _on_close(self, event) -> None:
        self.dispatcher.teardown()
        self.presenter.dismiss_error()
        event.Skip()

    # ------------------------------------------------------------------ view
    def set_status(self, message: str, icon: str) -> None:
        self.status_icon.SetLabel(_glyph(icon))
        self.status_label.SetLabel(message)
        self.root_panel.Layout()

    def show_error_banner(self, category: ErrorCategory, details: Optional[str]) -> None:
        self.banner_title.SetLabel(f"{_glyph('warning')} {category.title}")
        self.banner_message.SetLabel(category.message)
        self.banner_suggestions.SetLabel(
            "\n".join(f"{_glyph(s.icon)} {s.text}" for s in category.suggestions)
        )
        self.banner_details.SetLabel(f"Details: {details}" if details else "")
        self.banner_panel.Show()
        self.root_panel.Layout()

    def hide_error_banner(self) -> None:
        self.banner_panel.Hide()
        self.root_panel.Layout()

    def set_overlay_visible(self, visible: bool) -> None:
        self.overlay_btn.Show(visible)
        self.pause_btn.Show(not visible)
        self.root_panel.Layout()

    def show_fallback(self, url: str) -> None:
        if not _HAS_WEBVIEW:
            LOG.warning("No web view backend; offering the external player instead")
            self.presenter.update_status("Alternative player unavailable, try an external player", "external-link")
            return
        if self._webview is None:
            self._webview = wx.html2.WebView.New(self.fallback_panel)
            self.fallback_panel.GetSizer().Add(self._webview, 1, wx.EXPAND | wx.ALL, 0)
        self._webview.LoadURL(url)
        self.video_panel.Hide()
        self.fallback_panel.Show()
        self.root_panel.Layout()

    def hide_fallback(self) -> None:
        if self._webview is not None:
            self._webview.LoadURL("about:blank")
        self.fallback_panel.Hide()
        self.video_panel.Show()
        self.root_panel.Layout()

    def apply_theme(self, theme: str) -> None:
        colours = _DARK_COLOURS if theme == THEME_DARK else _LIGHT_COLOURS
        self.theme_btn.SetLabel("Light Mode" if theme == THEME_DARK else "Dark Mode")
        self.root_panel.SetBackgroundColour(colours["bg"])
        for ctrl in (self.status_icon, self.status_label):
            ctrl.SetForegroundColour(colours["fg"])
        self.banner_panel.SetBackgroundColour(colours["banner"])
        banner_fg = wx.WHITE if theme == THEME_DARK else wx.Colour(127, 29, 29)
        for ctrl in (self.banner_title, self.banner_message, self.banner_suggestions, self.banner_details):
            ctrl.SetForegroundColour(banner_fg)
        self.fallback_panel.SetBackgroundColour(colours["panel"])
        self.Refresh()
