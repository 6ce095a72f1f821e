"""
Tests for the wx player window wiring that does not need a display.
"""
import pytest
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

wx = pytest.importorskip("wx")

import player_frame


class TestBannerInteraction:
    def test_hover_does_not_count_as_interaction(self):
        assert wx.EVT_ENTER_WINDOW not in player_frame.BANNER_TOUCH_EVENTS

    def test_click_and_keys_count_as_interaction(self):
        assert wx.EVT_LEFT_DOWN in player_frame.BANNER_TOUCH_EVENTS
        assert wx.EVT_KEY_DOWN in player_frame.BANNER_TOUCH_EVENTS
