"""
Tests for handing a stream to an external player.
"""
import pytest
import os
import sys
from unittest.mock import patch

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from external_player import ExternalPlayerLauncher

URL = "http://iptv.example.com:8080/user/pass/1"


class TestLauncher:
    @patch("external_player.subprocess.Popen")
    @patch("external_player.shutil.which", return_value="/usr/bin/vlc")
    @patch("external_player.platform.system", return_value="Linux")
    def test_vlc_on_linux(self, _system, _which, popen):
        ok, err = ExternalPlayerLauncher().launch("VLC", URL)
        assert ok and err == ""
        argv = popen.call_args.args[0]
        assert argv[0] == "/usr/bin/vlc"
        assert argv[-1] == URL
        assert "--one-instance" in argv

    @patch("external_player.subprocess.Popen")
    @patch("external_player.shutil.which", return_value=None)
    @patch("external_player.platform.system", return_value="Linux")
    def test_mpv_falls_back_to_command_name(self, _system, _which, popen):
        ok, _ = ExternalPlayerLauncher().launch("MPV", URL)
        assert ok
        assert popen.call_args.args[0][:2] == ["mpv", "--force-window=yes"]

    @patch("external_player.subprocess.Popen", side_effect=FileNotFoundError())
    @patch("external_player.shutil.which", return_value=None)
    @patch("external_player.platform.system", return_value="Linux")
    def test_missing_executable(self, _system, _which, _popen):
        ok, err = ExternalPlayerLauncher().launch("VLC", URL)
        assert not ok
        assert "not found" in err

    @patch("external_player.subprocess.Popen")
    def test_custom_path(self, popen):
        ok, _ = ExternalPlayerLauncher().launch("VLC", URL, custom_path="/opt/mpv/bin/mpv")
        assert ok
        assert popen.call_args.args[0][0] == "/opt/mpv/bin/mpv"
        assert "--no-terminal" in popen.call_args.args[0]

    @patch("external_player.platform.system", return_value="Linux")
    def test_unknown_player(self, _system):
        ok, err = ExternalPlayerLauncher().launch("Winamp", URL)
        assert not ok
        assert "not a supported" in err

    def test_empty_url(self):
        ok, err = ExternalPlayerLauncher().launch("VLC", "")
        assert not ok

    @patch("external_player.subprocess.Popen")
    @patch("external_player.shutil.which", return_value="/usr/bin/vlc")
    @patch("external_player.platform.system", return_value="Linux")
    def test_double_launch_is_debounced(self, _system, _which, popen):
        launcher = ExternalPlayerLauncher()
        assert launcher.launch("VLC", URL) == (True, "")
        assert launcher.launch("VLC", URL) == (False, "")
        assert popen.call_count == 1
