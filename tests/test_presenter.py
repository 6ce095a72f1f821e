"""
Tests for the status/overlay presenter.
"""
import pytest
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from fakes import FakeScheduler, FakeView
from error_classifier import ERROR_CATEGORIES, ErrorKind
from options import THEME_DARK, THEME_LIGHT
from presenter import BANNER_AUTO_DISMISS_MS, StatusPresenter


@pytest.fixture
def presenter_and_view():
    view = FakeView()
    scheduler = FakeScheduler()
    return StatusPresenter(view, scheduler), view, scheduler


class TestStatusLine:
    def test_same_status_is_not_reapplied(self, presenter_and_view):
        presenter, view, _ = presenter_and_view
        presenter.update_status("Loading stream...", "spinner")
        presenter.update_status("Loading stream...", "spinner")
        assert view.count("set_status") == 1
        assert presenter.status_text == "Loading stream..."

    def test_icon_change_is_applied(self, presenter_and_view):
        presenter, view, _ = presenter_and_view
        presenter.update_status("Stream is playing", "spinner")
        presenter.update_status("Stream is playing", "play")
        assert view.calls[-1] == ("set_status", "Stream is playing", "play")


class TestErrorBanner:
    """Banner display, auto-dismiss and user interaction."""

    def test_auto_dismiss_after_timeout(self, presenter_and_view):
        presenter, view, scheduler = presenter_and_view
        presenter.show_error(ERROR_CATEGORIES[ErrorKind.NETWORK], "Network error")
        scheduler.advance(BANNER_AUTO_DISMISS_MS - 1)
        assert view.banner is ERROR_CATEGORIES[ErrorKind.NETWORK]
        scheduler.advance(1)
        assert view.banner is None
        assert presenter.banner is None

    def test_interaction_keeps_banner(self, presenter_and_view):
        presenter, view, scheduler = presenter_and_view
        presenter.show_error(ERROR_CATEGORIES[ErrorKind.AUTH])
        scheduler.advance(10_000)
        presenter.note_banner_interaction()
        scheduler.advance(BANNER_AUTO_DISMISS_MS * 2)
        assert view.banner is ERROR_CATEGORIES[ErrorKind.AUTH]

        presenter.dismiss_error()
        assert view.banner is None

    def test_same_category_shown_once(self, presenter_and_view):
        presenter, view, _ = presenter_and_view
        category = ERROR_CATEGORIES[ErrorKind.CODEC]
        presenter.show_error(category)
        presenter.show_error(category)
        assert view.count("show_error_banner") == 1

    def test_new_category_restarts_timer(self, presenter_and_view):
        presenter, view, scheduler = presenter_and_view
        presenter.show_error(ERROR_CATEGORIES[ErrorKind.NETWORK])
        scheduler.advance(20_000)
        presenter.show_error(ERROR_CATEGORIES[ErrorKind.TIMEOUT])
        scheduler.advance(20_000)
        assert view.banner is ERROR_CATEGORIES[ErrorKind.TIMEOUT]
        scheduler.advance(10_000)
        assert view.banner is None

    def test_dismiss_without_banner_is_noop(self, presenter_and_view):
        presenter, view, _ = presenter_and_view
        presenter.dismiss_error()
        assert view.count("hide_error_banner") == 0


class TestOverlayAndFallback:
    def test_overlay_visible_when_paused_or_ended(self, presenter_and_view):
        presenter, view, _ = presenter_and_view
        presenter.sync_overlay(paused=True)
        presenter.sync_overlay(paused=True)
        presenter.sync_overlay(paused=False, ended=True)
        assert view.count("set_overlay_visible") == 1
        presenter.sync_overlay(paused=False)
        assert view.overlay_visible is False
        assert not presenter.overlay_visible

    def test_fallback_show_and_hide(self, presenter_and_view):
        presenter, view, _ = presenter_and_view
        presenter.show_fallback("https://example.com/page")
        presenter.show_fallback("https://example.com/page")
        assert view.count("show_fallback") == 1
        assert presenter.fallback_active
        presenter.hide_fallback()
        presenter.hide_fallback()
        assert view.count("hide_fallback") == 1
        assert not presenter.fallback_active

    def test_theme_applied_once(self, presenter_and_view):
        presenter, view, _ = presenter_and_view
        presenter.apply_theme(THEME_DARK)
        presenter.apply_theme(THEME_DARK)
        presenter.apply_theme(THEME_LIGHT)
        assert [c for c in view.calls if c[0] == "apply_theme"] == [
            ("apply_theme", THEME_DARK),
            ("apply_theme", THEME_LIGHT),
        ]
