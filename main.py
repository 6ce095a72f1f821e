import argparse
import logging
import logging.handlers
import os
import platform
import sys
import tempfile

from options import load_config, parse_launch_argument
from stream_proxy import StreamProxy

LOG = logging.getLogger("iptvplayer")

LOG_PATH = os.path.join(tempfile.gettempdir(), "iptvplayer_debug.log")
AUTOLOAD_DELAY_MS = 500


def setup_logging() -> None:
    debug = os.getenv("IPTVPLAYER_DEBUG", "").strip() not in {"", "0", "false", "False"}
    root = logging.getLogger()
    if root.handlers:
        return
    root.setLevel(logging.DEBUG if debug else logging.INFO)
    fmt = logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")
    try:
        fh = logging.handlers.RotatingFileHandler(LOG_PATH, maxBytes=5 * 1024 * 1024, backupCount=2, encoding="utf-8")
        fh.setFormatter(fmt)
        root.addHandler(fh)
    except OSError as e:
        print(f"Could not open log file {LOG_PATH}: {e}", file=sys.stderr)
    if debug:
        sh = logging.StreamHandler()
        sh.setFormatter(fmt)
        root.addHandler(sh)
    LOG.debug("Logging initialised. File: %s", LOG_PATH)


def set_linux_env():
    if platform.system() != "Linux":
        return

    os.environ["UBUNTU_MENUPROXY"] = "0"
    distro = "unknown"
    try:
        with open("/etc/os-release") as f:
            os_release = f.read().lower()
        if "ubuntu" in os_release:
            distro = "ubuntu"
        elif "debian" in os_release:
            distro = "debian"
        elif "fedora" in os_release:
            distro = "fedora"
    except OSError:
        LOG.debug("No /etc/os-release; skipping distro tweaks")

    if distro == "debian":
        os.environ["GTK_OVERLAY_SCROLLING"] = "0"
    elif distro == "fedora":
        os.environ["GTK_USE_PORTAL"] = "1"
    # libVLC renders into an X11 window handle.
    os.environ.setdefault("GDK_BACKEND", "x11")


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="iptvplayer", description="Play IPTV and media streams.")
    parser.add_argument("link", nargs="?", help="iptvplayer://?url=... share link, ?url=... query or a stream URL")
    parser.add_argument("--url", help="Stream URL to load on start")
    parser.add_argument("--serve-proxy", action="store_true", help="Run only the pass-through proxy")
    parser.add_argument("--host", default="127.0.0.1", help="Proxy bind address (with --serve-proxy)")
    parser.add_argument("--port", type=int, default=None, help="Proxy port (with --serve-proxy)")
    return parser


def resolve_start_url(args) -> str:
    if args.url:
        return args.url.strip()
    return parse_launch_argument(args.link) or ""


def serve_proxy(host: str, port: int) -> int:
    proxy = StreamProxy(host=host, port=port)
    try:
        proxy.serve_forever()
    except KeyboardInterrupt:
        LOG.info("Proxy interrupted")
    return 0


def main(argv=None) -> int:
    args = build_arg_parser().parse_args(argv)
    setup_logging()

    if args.serve_proxy:
        port = args.port if args.port is not None else int(load_config().get("proxy_port") or 8787)
        return serve_proxy(args.host, port)

    set_linux_env()
    import wx
    from player_frame import PlayerFrame

    app = wx.App()
    app.SetAppName("IPTVPlayer")
    frame = PlayerFrame()
    start_url = resolve_start_url(args)
    if start_url:
        wx.CallLater(AUTOLOAD_DELAY_MS, frame.load_stream, start_url)
    app.MainLoop()
    return 0


if __name__ == "__main__":
    sys.exit(main())
