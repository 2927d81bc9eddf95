"""Entry point of the hook process (`artifact-bridge-hook`).

Exit codes: 0 lets the tool run, 1 blocks it. Anything that goes wrong
inside the bridge exits 0; stdout belongs to the CLI host, so logs go to
{root}/bridge.log.
"""
from __future__ import annotations

import argparse
import logging
import os
import selectors
import signal
import sys
import threading
from typing import Optional

from ..kernel.project import open_project
from ..kernel.session import clear_session
from ..kernel.settings import load_settings
from ..paths import bridge_log_path, ensure_home
from ..util.obslog import setup_root_json_logging
from .handlers import HookRunner
from .invocation import ToolInvocation


STDIN_TIMEOUT_SECONDS = 0.1

logger = logging.getLogger("artifact_bridge.hook.main")


def read_stdin(timeout: float = STDIN_TIMEOUT_SECONDS) -> Optional[str]:
    """Whole stdin when the host piped a document in, else None."""
    stream = sys.stdin
    if stream is None or stream.closed:
        return None
    try:
        if stream.isatty():
            return None
    except ValueError:
        return None
    try:
        with selectors.DefaultSelector() as sel:
            sel.register(stream, selectors.EVENT_READ)
            if not sel.select(timeout):
                return None
    except (OSError, ValueError):
        # Not selectable (Windows pipes); a plain read still returns at EOF.
        pass
    data = stream.read()
    return data.strip() or None


def _install_cancel_handlers(cancel: threading.Event) -> None:
    def _handle(signum: int, _frame: object) -> None:
        logger.info("signal %d received, cancelling", signum)
        cancel.set()

    for name in ("SIGTERM", "SIGINT"):
        sig = getattr(signal, name, None)
        if sig is None:
            continue
        try:
            signal.signal(sig, _handle)
        except (OSError, ValueError):
            pass


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="artifact-bridge-hook", description="CLI-side artifact bridge hook")
    parser.add_argument("--clear-session", action="store_true", help="Forget tracked changes for this workspace")
    args = parser.parse_args(argv)
    try:
        return _run(args)
    except Exception:
        logger.exception("hook setup failed, allowing the tool")
        return 0


def _run(args: argparse.Namespace) -> int:
    home = ensure_home()
    settings = load_settings(home)
    setup_root_json_logging(component="hook", level=settings.log_level, log_path=bridge_log_path(home))

    if args.clear_session:
        workspace = os.environ.get("CLAUDE_WORKING_DIR", "").strip() or os.getcwd()
        clear_session(open_project(workspace, home=home, settings=settings, use_registry=True))
        return 0

    invocation: Optional[ToolInvocation] = None
    raw = read_stdin()
    if raw:
        invocation = ToolInvocation.from_stdin(raw)
    if invocation is None:
        invocation = ToolInvocation.from_env(os.environ)
    if invocation is None:
        logger.info("no tool invocation on stdin or in the environment")
        return 0

    cancel = threading.Event()
    _install_cancel_handlers(cancel)
    try:
        ctx = open_project(invocation.cwd, home=home, settings=settings, use_registry=True)
        result = HookRunner(ctx, cancel=cancel).run(invocation)
    except Exception:
        logger.exception("hook failed, allowing %s", invocation.tool_name)
        return 0

    if result.message:
        sys.stderr.write(result.message + "\n")
    return result.exit_code


if __name__ == "__main__":
    raise SystemExit(main())
