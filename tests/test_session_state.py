import os
import tempfile
import threading
import unittest
from pathlib import Path


class TestSessionState(unittest.TestCase):
    def _ctx(self):
        from artifact_bridge.kernel.project import open_project
        from artifact_bridge.kernel.settings import IpcSettings

        td_ctx = tempfile.TemporaryDirectory()
        td = td_ctx.__enter__()
        ctx = open_project("/work/demo", home=Path(td), settings=IpcSettings(watch=False))
        return ctx, (lambda: td_ctx.__exit__(None, None, None))

    def test_fresh_session_when_missing(self) -> None:
        from artifact_bridge.kernel.session import load_session

        ctx, cleanup = self._ctx()
        try:
            s = load_session(ctx)
            self.assertTrue(s.session_id.startswith("session-"))
            self.assertEqual(s.changed_files, [])
            self.assertFalse(ctx.session_state_path.exists())
        finally:
            cleanup()

    def test_changes_accumulate_per_file(self) -> None:
        from artifact_bridge.kernel.session import add_file_change, load_session

        ctx, cleanup = self._ctx()
        try:
            add_file_change(ctx, "a.py", "create", lines_added=10)
            add_file_change(ctx, "a.py", "modify", lines_added=2, lines_removed=1)
            add_file_change(ctx, "b.py", "delete")
            s = load_session(ctx)
            a = s.find_file("a.py")
            assert a is not None
            self.assertEqual((a.change_type, a.lines_added, a.lines_removed, a.change_count), ("create", 12, 1, 2))
            self.assertEqual([f.file_path for f in s.changed_files], ["a.py", "b.py"])
        finally:
            cleanup()

    def test_wire_format_is_camel_case(self) -> None:
        import json

        from artifact_bridge.kernel.session import start_plan

        ctx, cleanup = self._ctx()
        try:
            start_plan(ctx, "impl-plan-1", started_ms=42)
            doc = json.loads(ctx.session_state_path.read_text(encoding="utf-8"))
            self.assertEqual(doc["currentPlanId"], "impl-plan-1")
            self.assertEqual(doc["planStartTime"], 42)
            self.assertIn("sessionId", doc)
        finally:
            cleanup()

    def test_concurrent_updates_are_not_lost(self) -> None:
        from artifact_bridge.kernel.session import add_file_change, load_session

        ctx, cleanup = self._ctx()
        try:
            threads = [
                threading.Thread(target=add_file_change, args=(ctx, f"f{i}.py", "modify"), kwargs={"lines_added": 1})
                for i in range(8)
            ]
            for t in threads:
                t.start()
            for t in threads:
                t.join(10)
            self.assertEqual(len(load_session(ctx).changed_files), 8)
        finally:
            cleanup()

    def test_clear_session(self) -> None:
        from artifact_bridge.kernel.session import add_file_change, clear_session

        ctx, cleanup = self._ctx()
        try:
            add_file_change(ctx, "a.py", "create")
            self.assertTrue(clear_session(ctx))
            self.assertFalse(ctx.session_state_path.exists())
            self.assertFalse(clear_session(ctx))
        finally:
            cleanup()

    def test_corrupt_file_starts_over(self) -> None:
        from artifact_bridge.kernel.session import load_session

        ctx, cleanup = self._ctx()
        try:
            os.makedirs(ctx.mailbox.path, exist_ok=True)
            ctx.session_state_path.write_text("{\"changedFiles\": 3}", encoding="utf-8")
            self.assertEqual(load_session(ctx).changed_files, [])
        finally:
            cleanup()


if __name__ == "__main__":
    unittest.main()
