import logging
from typing import Optional

from error_classifier import ErrorCategory

LOG = logging.getLogger(__name__)

BANNER_AUTO_DISMISS_MS = 30_000


class StatusPresenter:
    """Pushes player state into a view, skipping updates that change nothing.

    The view is any object with ``set_status``, ``show_error_banner``,
    ``hide_error_banner``, ``set_overlay_visible``, ``show_fallback``,
    ``hide_fallback`` and ``apply_theme``; the wx frame is the real one.
    """

    def __init__(self, view, scheduler, banner_timeout_ms: int = BANNER_AUTO_DISMISS_MS) -> None:
        self.view = view
        self.scheduler = scheduler
        self.banner_timeout_ms = banner_timeout_ms
        self._status = None
        self._banner: Optional[ErrorCategory] = None
        self._banner_timer = None
        self._overlay_visible: Optional[bool] = None
        self._fallback_url: Optional[str] = None
        self._theme: Optional[str] = None

    # ------------------------------------------------------------ status line
    def update_status(self, message: str, icon: str = "info") -> None:
        state = (message, icon)
        if state == self._status:
            return
        self._status = state
        self.view.set_status(message, icon)

    @property
    def status_text(self) -> str:
        return self._status[0] if self._status else ""

    # ------------------------------------------------------------ error banner
    @property
    def banner(self) -> Optional[ErrorCategory]:
        return self._banner

    def show_error(self, category: ErrorCategory, details: Optional[str] = None) -> None:
        if self._banner is category:
            return
        self._cancel_banner_timer()
        self._banner = category
        LOG.info("Showing error banner: %s (%s)", category.title, details or "no details")
        self.view.show_error_banner(category, details)
        self._banner_timer = self.scheduler.call_later(self.banner_timeout_ms, self._auto_dismiss)

    def note_banner_interaction(self) -> None:
        """The user touched the banner; keep it up until they dismiss it."""
        self._cancel_banner_timer()

    def dismiss_error(self) -> None:
        self._cancel_banner_timer()
        if self._banner is None:
            return
        self._banner = None
        self.view.hide_error_banner()

    def _auto_dismiss(self) -> None:
        self._banner_timer = None
        self.dismiss_error()

    def _cancel_banner_timer(self) -> None:
        if self._banner_timer is not None:
            self._banner_timer.cancel()
            self._banner_timer = None

    # ------------------------------------------------------------ overlay
    def sync_overlay(self, paused: bool, ended: bool = False) -> None:
        visible = bool(paused or ended)
        if visible == self._overlay_visible:
            return
        self._overlay_visible = visible
        self.view.set_overlay_visible(visible)

    @property
    def overlay_visible(self) -> bool:
        return bool(self._overlay_visible)

    # ------------------------------------------------------------ fallback
    def show_fallback(self, url: str) -> None:
        if self._fallback_url == url:
            return
        self._fallback_url = url
        self.view.show_fallback(url)

    def hide_fallback(self) -> None:
        if self._fallback_url is None:
            return
        self._fallback_url = None
        self.view.hide_fallback()

    @property
    def fallback_active(self) -> bool:
        return self._fallback_url is not None

    # ------------------------------------------------------------ theme
    def apply_theme(self, theme: str) -> None:
        if theme == self._theme:
            return
        self._theme = theme
        self.view.apply_theme(theme)
