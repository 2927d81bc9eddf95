import tempfile
import threading
import time
import unittest
from pathlib import Path


class TestApprovalHandshake(unittest.TestCase):
    def _mailbox(self):
        from artifact_bridge.kernel.mailbox import open_mailbox

        td_ctx = tempfile.TemporaryDirectory()
        td = td_ctx.__enter__()
        return open_mailbox(Path(td), "proj").ensure(), (lambda: td_ctx.__exit__(None, None, None))

    def _drop(self, mb, kind, payload):
        from artifact_bridge.kernel.codec import encode

        return mb.place("outbox", encode(kind, payload))

    def test_approve_consumes_the_file(self) -> None:
        from artifact_bridge.contracts.v1 import MessageType
        from artifact_bridge.kernel.approval import ApprovalHandshake, ApprovalState

        mb, cleanup = self._mailbox()
        try:
            path = self._drop(mb, MessageType.FEEDBACK, {"artifactId": "p1", "action": "proceed"})
            hs = ApprovalHandshake(mb, "p1", timeout_seconds=5, poll_seconds=0.01)
            outcome = hs.wait()
            self.assertTrue(outcome.approved)
            self.assertIsNone(outcome.reason)
            self.assertEqual(hs.state, ApprovalState.APPROVED)
            self.assertFalse(path.exists())
        finally:
            cleanup()

    def test_approval_arriving_later(self) -> None:
        from artifact_bridge.contracts.v1 import MessageType
        from artifact_bridge.kernel.approval import wait_for_approval

        mb, cleanup = self._mailbox()
        try:
            timer = threading.Timer(
                0.1, self._drop, args=(mb, MessageType.FEEDBACK, {"artifactId": "p1", "action": "proceed"})
            )
            timer.start()
            try:
                outcome = wait_for_approval(mb, "p1", timeout_seconds=5, poll_seconds=0.02)
            finally:
                timer.cancel()
            self.assertTrue(outcome.approved)
            self.assertEqual(mb.list("outbox"), [])
        finally:
            cleanup()

    def test_timeout(self) -> None:
        from artifact_bridge.kernel.approval import ApprovalHandshake, ApprovalState

        mb, cleanup = self._mailbox()
        try:
            hs = ApprovalHandshake(mb, "p1", timeout_seconds=0.05, poll_seconds=0.01)
            start = time.monotonic()
            outcome = hs.wait()
            elapsed = time.monotonic() - start
            self.assertFalse(outcome.approved)
            self.assertEqual(outcome.reason, "timeout")
            self.assertEqual(hs.state, ApprovalState.TIMED_OUT)
            self.assertGreaterEqual(elapsed, 0.04)
            self.assertLess(elapsed, 1.0)
        finally:
            cleanup()

    def test_reject(self) -> None:
        from artifact_bridge.contracts.v1 import MessageType
        from artifact_bridge.kernel.approval import ApprovalHandshake, ApprovalState

        mb, cleanup = self._mailbox()
        try:
            self._drop(mb, MessageType.FEEDBACK, {"artifactId": "p1", "action": "reject"})
            hs = ApprovalHandshake(mb, "p1", timeout_seconds=1, poll_seconds=0.01)
            outcome = hs.wait()
            self.assertFalse(outcome.approved)
            self.assertEqual(outcome.reason, "rejected")
            self.assertEqual(hs.state, ApprovalState.REJECTED)
        finally:
            cleanup()

    def test_option_selection_and_custom_response(self) -> None:
        from artifact_bridge.contracts.v1 import MessageType
        from artifact_bridge.kernel.approval import wait_for_approval

        mb, cleanup = self._mailbox()
        try:
            self._drop(
                mb,
                MessageType.OPTION_RESPONSE,
                {"artifactId": "p1", "action": "option-selected", "selectedOptionId": "opt-2", "timestamp": 1},
            )
            outcome = wait_for_approval(mb, "p1", timeout_seconds=1, poll_seconds=0.01)
            self.assertTrue(outcome.approved)
            self.assertEqual(outcome.selected_option_id, "opt-2")

            self._drop(
                mb,
                MessageType.OPTION_RESPONSE,
                {"artifactId": "p2", "action": "option-selected", "customResponse": "split it up", "timestamp": 2},
            )
            outcome = wait_for_approval(mb, "p2", timeout_seconds=1, poll_seconds=0.01)
            self.assertFalse(outcome.approved)
            self.assertEqual(outcome.reason, "custom")
            self.assertEqual(outcome.custom_response, "split it up")
        finally:
            cleanup()

    def test_other_plans_and_junk_are_left_alone(self) -> None:
        from artifact_bridge.contracts.v1 import MessageType
        from artifact_bridge.kernel.approval import wait_for_approval

        mb, cleanup = self._mailbox()
        try:
            other = self._drop(mb, MessageType.FEEDBACK, {"artifactId": "p2", "action": "proceed"})
            junk = mb.outbox_path / "0-partial.json"
            junk.write_text("{", encoding="utf-8")
            outcome = wait_for_approval(mb, "p1", timeout_seconds=0.05, poll_seconds=0.01)
            self.assertEqual(outcome.reason, "timeout")
            self.assertTrue(other.exists())
            self.assertTrue(junk.exists())
        finally:
            cleanup()

    def test_cancellation(self) -> None:
        from artifact_bridge.kernel.approval import ApprovalHandshake, ApprovalState

        mb, cleanup = self._mailbox()
        try:
            cancel = threading.Event()
            hs = ApprovalHandshake(mb, "p1", timeout_seconds=30, poll_seconds=0.02, cancel=cancel)
            threading.Timer(0.05, cancel.set).start()
            start = time.monotonic()
            outcome = hs.wait()
            self.assertLess(time.monotonic() - start, 5)
            self.assertEqual(outcome.reason, "cancelled")
            self.assertEqual(hs.state, ApprovalState.CANCELLED)
        finally:
            cleanup()

    def test_watch_wakes_the_wait_before_the_next_poll(self) -> None:
        from artifact_bridge.contracts.v1 import MessageType
        from artifact_bridge.kernel.approval import ApprovalHandshake

        mb, cleanup = self._mailbox()
        try:
            timer = threading.Timer(
                0.3, self._drop, args=(mb, MessageType.FEEDBACK, {"artifactId": "p1", "action": "proceed"})
            )
            hs = ApprovalHandshake(mb, "p1", timeout_seconds=20, poll_seconds=30, watch=True)
            started = time.monotonic()
            timer.start()
            try:
                outcome = hs.wait()
            finally:
                timer.cancel()
            self.assertTrue(outcome.approved)
            self.assertLess(time.monotonic() - started, 5)
            self.assertEqual(mb.list("outbox"), [])
        finally:
            cleanup()


if __name__ == "__main__":
    unittest.main()
