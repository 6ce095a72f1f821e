"""
Tests for command-line handling of the entry point.
"""
import pytest
import os
import sys
from unittest.mock import patch

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import main


class TestStartUrl:
    def parse(self, *argv):
        return main.build_arg_parser().parse_args(list(argv))

    def test_url_flag(self):
        assert main.resolve_start_url(self.parse("--url", " http://host/a.ts ")) == "http://host/a.ts"

    def test_share_link_argument(self):
        args = self.parse("iptvplayer://?url=https%3A%2F%2Fcdn.example.com%2Flive.m3u8")
        assert main.resolve_start_url(args) == "https://cdn.example.com/live.m3u8"

    def test_query_argument(self):
        assert main.resolve_start_url(self.parse("?url=http%3A%2F%2Fhost%2Fa.ts")) == "http://host/a.ts"

    def test_flag_wins_over_link(self):
        args = self.parse("?url=http%3A%2F%2Fother%2Fb.ts", "--url", "http://host/a.ts")
        assert main.resolve_start_url(args) == "http://host/a.ts"

    def test_nothing_given(self):
        assert main.resolve_start_url(self.parse()) == ""


class TestServeProxy:
    def test_serve_proxy_mode_skips_gui(self):
        with patch.object(main, "setup_logging"), patch.object(main, "serve_proxy", return_value=0) as serve:
            assert main.main(["--serve-proxy", "--port", "9123", "--host", "0.0.0.0"]) == 0
        serve.assert_called_once_with("0.0.0.0", 9123)
