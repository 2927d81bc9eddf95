import os
import tempfile
import unittest
from pathlib import Path


class TestSettings(unittest.TestCase):
    def test_defaults_when_missing(self) -> None:
        from artifact_bridge.kernel.settings import IpcSettings, load_settings

        with tempfile.TemporaryDirectory() as td:
            self.assertEqual(load_settings(Path(td), environ={}), IpcSettings())

    def test_yaml_values_and_env_overrides(self) -> None:
        from artifact_bridge.kernel.settings import load_settings

        with tempfile.TemporaryDirectory() as td:
            (Path(td) / "settings.yaml").write_text(
                "retry_attempts: 5\nwatch: false\napproval_timeout_seconds: 10\nunknown: 1\n", encoding="utf-8"
            )
            s = load_settings(Path(td), environ={"CLAUDE_ARTIFACTS_APPROVAL_TIMEOUT": "2.5"})
            self.assertEqual(s.retry_attempts, 5)
            self.assertFalse(s.watch)
            self.assertEqual(s.approval_timeout_seconds, 2.5)

            s = load_settings(Path(td), environ={"CLAUDE_ARTIFACTS_WATCH": "yes", "CLAUDE_ARTIFACTS_LOG_LEVEL": "debug"})
            self.assertTrue(s.watch)
            self.assertEqual(s.log_level, "DEBUG")

    def test_bad_values_fall_back(self) -> None:
        from artifact_bridge.kernel.settings import IpcSettings

        s = IpcSettings.from_dict({"retry_attempts": "many", "idle_poll_seconds": -1, "watch": "maybe"})
        self.assertEqual(s.retry_attempts, 3)
        self.assertEqual(s.idle_poll_seconds, 0.01)
        self.assertTrue(s.watch)

    def test_malformed_yaml_yields_defaults(self) -> None:
        from artifact_bridge.kernel.settings import IpcSettings, load_settings

        with tempfile.TemporaryDirectory() as td:
            (Path(td) / "settings.yaml").write_text("retry_attempts: [unclosed\n", encoding="utf-8")
            self.assertEqual(load_settings(Path(td), environ={}), IpcSettings())

    def test_save_then_load(self) -> None:
        from artifact_bridge.kernel.settings import IpcSettings, load_settings, save_settings

        with tempfile.TemporaryDirectory() as td:
            save_settings(IpcSettings(retry_attempts=7, log_level="WARNING"), Path(td))
            s = load_settings(Path(td), environ={})
            self.assertEqual(s.retry_attempts, 7)
            self.assertEqual(s.log_level, "WARNING")


class TestProjectRegistry(unittest.TestCase):
    def test_register_and_lookup_from_subdirectory(self) -> None:
        from artifact_bridge.kernel.registry import load_registry, lookup_project_path, register_project

        with tempfile.TemporaryDirectory() as td:
            home = Path(td)
            register_project(home, "/work/app", home / "app-12345678")
            entry = load_registry(home).find("/work/app")
            assert entry is not None
            self.assertEqual(entry["name"], "app")
            self.assertIn("lastActive", entry)
            self.assertEqual(lookup_project_path(home, "/work/app/src/pkg"), home / "app-12345678")
            self.assertIsNone(lookup_project_path(home, "/elsewhere"))

    def test_flat_mapping_shared_with_editor_extension(self) -> None:
        import json

        from artifact_bridge.kernel.registry import lookup_project_path, register_project

        with tempfile.TemporaryDirectory() as td:
            home = Path(td)
            projects = home / "projects.json"
            projects.write_text(
                json.dumps(
                    {
                        "/work/other": {"path": str(home / "other-abcdef12"), "name": "other", "lastActive": "x"},
                        "/work/junk": "not an entry",
                    }
                ),
                encoding="utf-8",
            )
            self.assertEqual(lookup_project_path(home, "/work/other"), home / "other-abcdef12")
            self.assertIsNone(lookup_project_path(home, "/work/junk"))

            register_project(home, "/work/app", home / "app-12345678")
            doc = json.loads(projects.read_text(encoding="utf-8"))
            self.assertEqual(sorted(doc), ["/work/app", "/work/other"])
            self.assertEqual(doc["/work/app"]["path"], str(home / "app-12345678"))
            self.assertEqual(doc["/work/other"]["name"], "other")

    def test_open_project_uses_registry_when_asked(self) -> None:
        from artifact_bridge.kernel.identity import project_id_for
        from artifact_bridge.kernel.project import open_project
        from artifact_bridge.kernel.settings import IpcSettings

        with tempfile.TemporaryDirectory() as td:
            home = Path(td)
            owner = open_project("/work/app", home=home, settings=IpcSettings())
            owner.register()

            nested = open_project("/work/app/sub", home=home, settings=IpcSettings(), use_registry=True)
            self.assertEqual(nested.mailbox.path, owner.mailbox.path)
            self.assertEqual(nested.project_id, project_id_for("/work/app"))

            plain = open_project("/work/app/sub", home=home, settings=IpcSettings())
            self.assertEqual(plain.project_id, project_id_for("/work/app/sub"))

    def test_home_env_override(self) -> None:
        from artifact_bridge.paths import artifacts_home

        old = os.environ.get("CLAUDE_ARTIFACTS_HOME")
        with tempfile.TemporaryDirectory() as td:
            os.environ["CLAUDE_ARTIFACTS_HOME"] = td
            try:
                self.assertEqual(artifacts_home(), Path(td).resolve())
            finally:
                if old is None:
                    os.environ.pop("CLAUDE_ARTIFACTS_HOME", None)
                else:
                    os.environ["CLAUDE_ARTIFACTS_HOME"] = old


if __name__ == "__main__":
    unittest.main()
