from __future__ import annotations

import argparse
import concurrent.futures
import json
import os
import signal
import stat
import sys
import threading
from pathlib import Path
from typing import Any, Optional

from . import __version__
from .contracts.v1 import FeedbackData, MessageType, OptionSelectionData
from .daemon.client import IpcClient
from .daemon.handler import MessageHandler
from .daemon.outbound import DeliveryError, OutboundQueue
from .daemon.presenter import LoggingPresenter
from .daemon.state import StateBroadcaster
from .daemon.store import MemoryArtifactStore
from .kernel.codec import encode
from .kernel.plan_parser import parse_plan_markdown, plan_id_for_title
from .kernel.project import ProjectContext, open_project
from .kernel.registry import load_registry
from .paths import ensure_home, hooks_dir
from .util.obslog import setup_root_json_logging
from .util.time import ms_to_iso, now_ms


SEND_TIMEOUT_SECONDS = 10.0
CLEANUP_INTERVAL_SECONDS = 60 * 60.0


def _print_json(obj: Any) -> None:
    print(json.dumps(obj, ensure_ascii=False, indent=2))


def _workspace(args: argparse.Namespace) -> str:
    return str(getattr(args, "workspace", "") or "").strip() or os.getcwd()


def _context(args: argparse.Namespace, *, use_registry: bool = True) -> ProjectContext:
    ctx = open_project(_workspace(args), home=ensure_home(), use_registry=use_registry)
    setup_root_json_logging(component="cli", level=ctx.settings.log_level)
    return ctx


def _send_to_outbox(ctx: ProjectContext, kind: MessageType, payload: Any) -> dict:
    envelope = encode(kind, payload)
    queue = OutboundQueue(
        lambda env: ctx.mailbox.place("outbox", env),
        retry_attempts=ctx.settings.retry_attempts,
        retry_delay_seconds=ctx.settings.retry_delay_seconds,
        name="cli",
    )
    try:
        queue.enqueue(envelope).result(timeout=SEND_TIMEOUT_SECONDS)
    finally:
        queue.close()
    return {"project_id": ctx.project_id, "message_id": envelope.id, "file": envelope.filename}


def cmd_version(_: argparse.Namespace) -> int:
    print(__version__)
    return 0


def cmd_info(args: argparse.Namespace) -> int:
    ctx = _context(args)
    mb = ctx.mailbox
    reg = load_registry(ctx.home)
    _print_json(
        {
            "ok": True,
            "result": {
                "workspace": ctx.workspace,
                "project_id": ctx.project_id,
                "mailbox": str(mb.path),
                "registered": reg.find(ctx.workspace) is not None,
                "inbox": len(mb.list("inbox")),
                "outbox": len(mb.list("outbox")),
                "processed": len(mb.list("processed")),
                "settings": ctx.settings.to_dict(),
            },
        }
    )
    return 0


def cmd_state(args: argparse.Namespace) -> int:
    ctx = _context(args)
    broadcaster = StateBroadcaster(ctx.mailbox.state_path, watch=False)
    if args.set:
        changed = broadcaster.publish_state(args.set, args.description or "")
        _print_json({"ok": True, "result": {"changed": changed}})
        return 0
    snap = broadcaster.read()
    if snap is None:
        _print_json({"ok": False, "error": {"code": "no_state", "message": "no state published yet"}})
        return 1
    doc = snap.to_wire()
    doc["startedAtIso"] = ms_to_iso(snap.started_at)
    _print_json({"ok": True, "result": doc})
    return 0


def _send_decision(args: argparse.Namespace, kind: MessageType, payload: Any) -> int:
    ctx = _context(args)
    try:
        result = _send_to_outbox(ctx, kind, payload)
    except (DeliveryError, concurrent.futures.TimeoutError) as e:
        _print_json({"ok": False, "error": {"code": "send_failed", "message": str(e)}})
        return 1
    _print_json({"ok": True, "result": result})
    return 0


def cmd_approve(args: argparse.Namespace) -> int:
    return _send_decision(args, MessageType.FEEDBACK, FeedbackData(artifact_id=args.plan_id, action="proceed"))


def cmd_reject(args: argparse.Namespace) -> int:
    data = FeedbackData(artifact_id=args.plan_id, action="reject", reason=args.reason or None)
    return _send_decision(args, MessageType.FEEDBACK, data)


def cmd_select(args: argparse.Namespace) -> int:
    if not args.option and not args.custom:
        _print_json({"ok": False, "error": {"code": "missing_choice", "message": "pass --option or --custom"}})
        return 2
    data = OptionSelectionData(
        artifact_id=args.artifact_id,
        selected_option_id=args.option or None,
        custom_response=args.custom or None,
        timestamp=now_ms(),
    )
    return _send_decision(args, MessageType.OPTION_RESPONSE, data)


def cmd_cleanup(args: argparse.Namespace) -> int:
    ctx = _context(args)
    if args.max_age_hours is None:
        max_age = ctx.settings.processed_max_age_seconds
    else:
        max_age = float(args.max_age_hours) * 3600.0
    cleaned = ctx.mailbox.cleanup_processed(max_age)
    _print_json({"ok": True, "result": {"project_id": ctx.project_id, "removed": cleaned}})
    return 0


def cmd_parse_plan(args: argparse.Namespace) -> int:
    if args.path == "-":
        text = sys.stdin.read()
    else:
        try:
            text = Path(args.path).read_text(encoding="utf-8")
        except OSError as e:
            _print_json({"ok": False, "error": {"code": "read_failed", "message": str(e)}})
            return 1
    doc = parse_plan_markdown(text)
    result = doc.to_wire()
    result["planId"] = plan_id_for_title(doc.title)
    result["estimatedChanges"] = doc.estimated_changes
    _print_json({"ok": True, "result": result})
    return 0


def _hook_script() -> str:
    return f'#!/bin/sh\nexec "{sys.executable}" -m artifact_bridge.hook "$@"\n'


def cmd_install_hook(args: argparse.Namespace) -> int:
    target = hooks_dir(ensure_home()) / "artifact-bridge"
    if target.exists() and not args.force:
        _print_json({"ok": False, "error": {"code": "exists", "message": f"{target} exists (use --force)"}})
        return 1
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(_hook_script(), encoding="utf-8")
    target.chmod(target.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    command = str(target)
    _print_json(
        {
            "ok": True,
            "result": {
                "path": command,
                "settings": {
                    "hooks": {
                        "PreToolUse": [{"matcher": "ExitPlanMode", "hooks": [{"type": "command", "command": command}]}],
                        "PostToolUse": [{"matcher": ".*", "hooks": [{"type": "command", "command": command}]}],
                    }
                },
            },
        }
    )
    return 0


def cmd_watch(args: argparse.Namespace) -> int:
    ctx = _context(args, use_registry=False)
    client = IpcClient(ctx)
    MessageHandler(client, MemoryArtifactStore(), LoggingPresenter()).attach()

    stop = threading.Event()

    def _handle(_signum: int, _frame: object) -> None:
        stop.set()

    for name in ("SIGTERM", "SIGINT"):
        sig = getattr(signal, name, None)
        if sig is not None:
            signal.signal(sig, _handle)

    try:
        client.initialize()
        client.cleanup_processed()
        remaining: Optional[float] = args.duration
        while not stop.is_set():
            wait = CLEANUP_INTERVAL_SECONDS if remaining is None else min(CLEANUP_INTERVAL_SECONDS, remaining)
            if stop.wait(wait):
                break
            if remaining is not None:
                remaining -= wait
                if remaining <= 0:
                    break
            client.cleanup_processed()
    finally:
        client.close()
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="artifact-bridge", description="File-based artifact bridge")
    sub = parser.add_subparsers(dest="cmd", required=True)

    def _with_workspace(p: argparse.ArgumentParser) -> argparse.ArgumentParser:
        p.add_argument("--workspace", default="", help="Workspace path (default: cwd)")
        return p

    p = sub.add_parser("version", help="Show version")
    p.set_defaults(func=cmd_version)

    p = _with_workspace(sub.add_parser("watch", help="Run the editor side: consume inbox, answer on outbox"))
    p.add_argument("--duration", type=float, default=None, help="Stop after N seconds (default: until signalled)")
    p.set_defaults(func=cmd_watch)

    p = _with_workspace(sub.add_parser("info", help="Show project id, mailbox and queue depths"))
    p.set_defaults(func=cmd_info)

    p = _with_workspace(sub.add_parser("state", help="Show or publish the current state"))
    p.add_argument("--set", default="", help="Publish this state instead of reading")
    p.add_argument("--description", default="", help="Description for --set")
    p.set_defaults(func=cmd_state)

    p = _with_workspace(sub.add_parser("approve", help="Approve a pending plan"))
    p.add_argument("plan_id")
    p.set_defaults(func=cmd_approve)

    p = _with_workspace(sub.add_parser("reject", help="Reject a pending plan"))
    p.add_argument("plan_id")
    p.add_argument("--reason", default="", help="Why")
    p.set_defaults(func=cmd_reject)

    p = _with_workspace(sub.add_parser("select", help="Answer an options prompt"))
    p.add_argument("artifact_id")
    p.add_argument("--option", default="", help="Selected option id")
    p.add_argument("--custom", default="", help="Custom response text")
    p.set_defaults(func=cmd_select)

    p = _with_workspace(sub.add_parser("cleanup", help="Delete old processed messages"))
    p.add_argument("--max-age-hours", type=float, default=None)
    p.set_defaults(func=cmd_cleanup)

    p = sub.add_parser("parse-plan", help="Parse a markdown plan and print it as JSON")
    p.add_argument("path", help="Markdown file, or - for stdin")
    p.set_defaults(func=cmd_parse_plan)

    p = sub.add_parser("install-hook", help="Write the hook shim under the artifacts root")
    p.add_argument("--force", action="store_true", help="Overwrite an existing shim")
    p.set_defaults(func=cmd_install_hook)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    return int(args.func(args))


if __name__ == "__main__":
    raise SystemExit(main())
