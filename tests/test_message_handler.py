import tempfile
import threading
import unittest
from pathlib import Path


def _presenter_class():
    from artifact_bridge.daemon.presenter import Presenter

    class RecordingPresenter(Presenter):
        def __init__(self) -> None:
            self.shown = []
            self.notes = []
            self.errors = []
            self.states = []
            self.discussions = []
            self.choice = None
            self.approve_review = False

        def show_artifact(self, artifact):
            self.shown.append(artifact)

        def notify(self, message):
            self.notes.append(message)

        def show_error(self, message):
            self.errors.append(message)

        def update_state(self, snapshot):
            self.states.append(snapshot.state)

        def present_options(self, options):
            return self.choice

        def confirm_review(self, artifact):
            return self.approve_review

        def show_discussion_response(self, response):
            self.discussions.append(response.thread_id)

    return RecordingPresenter


class TestMessageHandler(unittest.TestCase):
    def _setup(self):
        from artifact_bridge.daemon.client import IpcClient
        from artifact_bridge.daemon.handler import MessageHandler
        from artifact_bridge.daemon.store import MemoryArtifactStore
        from artifact_bridge.kernel.project import open_project
        from artifact_bridge.kernel.settings import IpcSettings

        td_ctx = tempfile.TemporaryDirectory()
        td = td_ctx.__enter__()
        ctx = open_project("/work/editor", home=Path(td), settings=IpcSettings(watch=False, retry_delay_seconds=0))
        client = IpcClient(ctx)
        presenter = _presenter_class()()
        store = MemoryArtifactStore()
        handler = MessageHandler(client, store, presenter)

        def cleanup() -> None:
            client.outbound.close()
            td_ctx.__exit__(None, None, None)

        return handler, store, presenter, client, cleanup

    def _env(self, kind, payload):
        from artifact_bridge.kernel.codec import encode

        return encode(kind, payload)

    def _outbox(self, client):
        from artifact_bridge.kernel.codec import decode

        self.assertTrue(client.outbound.flush(timeout=5))
        return [decode(p.read_bytes()) for p in client.ctx.mailbox.list("outbox")]

    def test_create_upserts_and_shows(self) -> None:
        from artifact_bridge.contracts.v1 import MessageType

        handler, store, presenter, _, cleanup = self._setup()
        try:
            art = {"id": "claude-code-tasks", "type": "task-list", "title": "Tasks", "status": "draft"}
            handler.handle(self._env(MessageType.ARTIFACT, {"action": "create", "artifact": art}))
            self.assertEqual(store.get("claude-code-tasks")["title"], "Tasks")
            self.assertEqual(presenter.shown[-1]["id"], "claude-code-tasks")
            self.assertIn("Artifact created: Tasks", presenter.notes)
        finally:
            cleanup()

    def test_update_merges_and_reports_status_change(self) -> None:
        from artifact_bridge.contracts.v1 import MessageType

        handler, store, presenter, _, cleanup = self._setup()
        try:
            store.upsert({"id": "p1", "type": "implementation-plan", "title": "Plan", "status": "draft", "summary": "s"})
            handler.handle(self._env(MessageType.ARTIFACT, {"action": "update", "artifact": {"id": "p1", "status": "approved"}}))
            merged = store.get("p1")
            self.assertEqual((merged["status"], merged["summary"]), ("approved", "s"))
            self.assertIn('Artifact "Plan" status: approved', presenter.notes)
        finally:
            cleanup()

    def test_update_unknown_artifact(self) -> None:
        from artifact_bridge.contracts.v1 import MessageType

        handler, store, _, client, cleanup = self._setup()
        try:
            handler.handle(self._env(MessageType.ARTIFACT, {"action": "update", "artifact": {"id": "ghost", "status": "approved"}}))
            (err,) = self._outbox(client)
            self.assertEqual(err.type, MessageType.ERROR)
            self.assertEqual(err.payload["code"], "ARTIFACT_NOT_FOUND")

            typed = {"id": "w", "type": "walkthrough", "title": "Walk"}
            handler.handle(self._env(MessageType.ARTIFACT, {"action": "update", "artifact": typed}))
            created = store.get("w")
            self.assertIsNotNone(created)
            self.assertEqual(created["comments"], [])
            self.assertIn("createdAt", created)
        finally:
            cleanup()

    def test_delete(self) -> None:
        from artifact_bridge.contracts.v1 import MessageType

        handler, store, presenter, _, cleanup = self._setup()
        try:
            store.upsert({"id": "x", "title": "X"})
            handler.handle(self._env(MessageType.ARTIFACT, {"action": "delete", "artifactId": "x"}))
            self.assertIsNone(store.get("x"))
            self.assertIn("Artifact deleted: X", presenter.notes)
            handler.handle(self._env(MessageType.ARTIFACT, {"action": "delete", "artifactId": "x"}))
        finally:
            cleanup()

    def test_request_review_approved_on_the_spot(self) -> None:
        from artifact_bridge.contracts.v1 import MessageType

        handler, store, presenter, client, cleanup = self._setup()
        try:
            store.upsert({"id": "p1", "title": "Plan", "status": "draft"})
            presenter.approve_review = True
            handler.handle(self._env(MessageType.ARTIFACT, {"action": "request-review", "artifactId": "p1"}))
            self.assertEqual(presenter.shown[-1]["status"], "pending-review")
            self.assertIn("Review requested: Plan", presenter.notes)
            self.assertEqual(store.get("p1")["status"], "approved")
            (fb,) = self._outbox(client)
            self.assertEqual((fb.type, fb.artifact_id, fb.action), (MessageType.FEEDBACK, "p1", "proceed"))
        finally:
            cleanup()

    def test_options_selection_goes_back(self) -> None:
        from artifact_bridge.contracts.v1 import MessageType

        handler, _, presenter, client, cleanup = self._setup()
        try:
            presenter.choice = ("opt-b", None)
            options = {
                "action": "present-options",
                "artifactId": "p1",
                "prompt": "Which one?",
                "options": [{"id": "opt-a", "title": "A"}, {"id": "opt-b", "title": "B", "recommended": True}],
            }
            handler.handle(self._env(MessageType.OPTIONS, options))
            (resp,) = self._outbox(client)
            self.assertEqual(resp.type, MessageType.OPTION_RESPONSE)
            self.assertEqual(resp.payload["selectedOptionId"], "opt-b")
            self.assertEqual(resp.action, "option-selected")
        finally:
            cleanup()

    def test_discussion_response_adds_agent_comment(self) -> None:
        from artifact_bridge.contracts.v1 import MessageType

        handler, store, presenter, _, cleanup = self._setup()
        try:
            store.upsert({"id": "p1", "title": "Plan"})
            payload = {
                "action": "discussion-response",
                "artifactId": "p1",
                "threadId": "section-2",
                "response": {"content": "Because of X.", "author": "agent"},
            }
            handler.handle(self._env(MessageType.DISCUSSION_RESPONSE, payload))
            (comment,) = store.get("p1")["comments"]
            self.assertEqual((comment["author"], comment["sectionId"]), ("agent", "section-2"))
            self.assertEqual(presenter.discussions, ["section-2"])
        finally:
            cleanup()

    def test_state_and_error_messages(self) -> None:
        from artifact_bridge.contracts.v1 import MessageType

        handler, _, presenter, _, cleanup = self._setup()
        try:
            handler.handle(self._env(MessageType.STATE, {"state": "waiting-for-approval", "startedAt": 1}))
            handler.handle(self._env(MessageType.ERROR, {"code": "E1", "message": "oops"}))
            handler.handle(self._env(MessageType.STATUS, {"status": "ready"}))
            self.assertEqual(presenter.states, ["waiting-for-approval"])
            self.assertIn("Claude is waiting for plan approval", presenter.notes)
            self.assertEqual(presenter.errors, ["CLI Error [E1]: oops"])
        finally:
            cleanup()

    def test_handler_failure_is_reported_back(self) -> None:
        from artifact_bridge.contracts.v1 import Envelope, MessageType

        handler, _, _, client, cleanup = self._setup()
        try:
            broken = Envelope(id="msg-1-x", timestamp=1, type=MessageType.ARTIFACT, payload={"action": "create"})
            handler.handle(broken)
            (err,) = self._outbox(client)
            self.assertEqual(err.payload["code"], "HANDLER_ERROR")
            self.assertEqual(err.payload["details"], {"messageId": "msg-1-x"})
        finally:
            cleanup()


class TestIpcClient(unittest.TestCase):
    def test_lifecycle_delivers_inbox_and_announces_status(self) -> None:
        from artifact_bridge.contracts.v1 import MessageType
        from artifact_bridge.daemon.client import IpcClient
        from artifact_bridge.kernel.codec import decode, encode
        from artifact_bridge.kernel.project import open_project
        from artifact_bridge.kernel.registry import load_registry
        from artifact_bridge.kernel.settings import IpcSettings

        with tempfile.TemporaryDirectory() as td:
            settings = IpcSettings(watch=False, idle_poll_seconds=0.05, retry_delay_seconds=0)
            ctx = open_project("/work/editor", home=Path(td), settings=settings)
            client = IpcClient(ctx)
            got = threading.Event()
            client.on_message(lambda env: got.set())
            client.initialize()
            try:
                self.assertIsNotNone(load_registry(Path(td)).find("/work/editor"))
                ctx.mailbox.place("inbox", encode(MessageType.STATUS, {"status": "busy"}))
                self.assertTrue(got.wait(5))
            finally:
                client.close()

            statuses = [decode(p.read_bytes()).payload["status"] for p in ctx.mailbox.list("outbox")]
            self.assertEqual(statuses, ["ready", "disconnected"])

    def test_discussion_request_and_observed_state(self) -> None:
        from artifact_bridge.contracts.v1 import MessageType
        from artifact_bridge.daemon.client import IpcClient
        from artifact_bridge.kernel.codec import decode
        from artifact_bridge.kernel.project import open_project
        from artifact_bridge.kernel.settings import IpcSettings

        with tempfile.TemporaryDirectory() as td:
            ctx = open_project("/work/editor", home=Path(td), settings=IpcSettings(watch=False, retry_delay_seconds=0))
            client = IpcClient(ctx)
            seen = []
            client.on_state_change(lambda snap: seen.append(snap.state))
            try:
                comments = [{"id": "c1", "content": "Why?", "author": "user"}]
                client.send_discussion_request("p1", "section-1", comments, "answer-question").result(timeout=5)
                (env,) = [decode(p.read_bytes()) for p in ctx.mailbox.list("outbox")]
                self.assertEqual((env.type, env.action), (MessageType.DISCUSSION, "request-discussion"))
                self.assertEqual(env.payload["requestType"], "answer-question")

                client.state.publish_state("thinking", "hmm")
                client.state.check()
                self.assertEqual(seen, ["thinking"])
                self.assertEqual(client.claude_state.description, "hmm")
            finally:
                client.outbound.close()

    def test_delivery_error_reaches_error_listener(self) -> None:
        from artifact_bridge.daemon.client import IpcClient
        from artifact_bridge.daemon.outbound import DeliveryError
        from artifact_bridge.kernel.project import open_project
        from artifact_bridge.kernel.settings import IpcSettings

        with tempfile.TemporaryDirectory() as td:
            ctx = open_project("/work/editor", home=Path(td), settings=IpcSettings(watch=False, retry_delay_seconds=0))
            # A file where the mailbox directory should be makes every place() fail.
            ctx.mailbox.path.parent.mkdir(parents=True, exist_ok=True)
            ctx.mailbox.path.write_text("not a directory", encoding="utf-8")
            client = IpcClient(ctx)
            errors = []
            client.on_error(errors.append)
            fut = client.send_error("X", "y")
            with self.assertRaises(DeliveryError):
                fut.result(timeout=5)
            self.assertTrue(client.outbound.flush(timeout=5))
            self.assertEqual(len(errors), 1)
            client.outbound.close()


if __name__ == "__main__":
    unittest.main()
