import io
import json
import os
import shutil
import tempfile
import unittest
from unittest.mock import patch

from gnash.__main__ import main, validate_project_dir
from gnash.core.errors import ManifestNotFound


class TestValidateProjectDir(unittest.TestCase):

    def setUp(self):
        self.project = tempfile.mkdtemp()
        self.addCleanup(shutil.rmtree, self.project)

    def test_missing_directory(self):
        self.assertIn("does not exist", validate_project_dir(os.path.join(self.project, "nope")))

    def test_not_a_directory(self):
        path = os.path.join(self.project, "file.txt")
        open(path, "w").close()
        self.assertIn("is not a directory", validate_project_dir(path))

    def test_without_manifest(self):
        self.assertIn("No package.json", validate_project_dir(self.project))

    def test_valid(self):
        open(os.path.join(self.project, "package.json"), "w").close()
        self.assertIsNone(validate_project_dir(self.project))


class TestMain(unittest.TestCase):

    def setUp(self):
        self.project = tempfile.mkdtemp()
        self.addCleanup(shutil.rmtree, self.project)

    def make_project(self):
        with open(os.path.join(self.project, "package.json"), "w") as f:
            json.dump({"name": "proj", "version": "1.0.0", "dependencies": {"a": "1.0.0"}}, f)
        with open(os.path.join(self.project, "package-lock.json"), "w") as f:
            json.dump({"dependencies": {"a": {"version": "1.0.0"}}}, f)
        pkg = os.path.join(self.project, "node_modules", "a")
        os.makedirs(pkg)
        with open(os.path.join(pkg, "package.json"), "w") as f:
            json.dump({"name": "a", "version": "1.0.0"}, f)
        with open(os.path.join(pkg, "index.js"), "w") as f:
            f.write("eval(payload);\n")

    def test_invalid_project_dir(self):
        with patch("sys.stderr", new_callable=io.StringIO):
            self.assertEqual(main([os.path.join(self.project, "nope")]), 1)

    @patch("sys.stdout", new_callable=io.StringIO)
    def test_report(self, mock_stdout):
        self.make_project()

        self.assertEqual(main([self.project]), 0)
        self.assertIn("a 1.0.0 Detections: 1 Immediate 1 Transitive", mock_stdout.getvalue())

    @patch("sys.stdout", new_callable=io.StringIO)
    def test_json_report(self, mock_stdout):
        self.make_project()

        self.assertEqual(main([self.project, "--json"]), 0)
        self.assertIn('"project": "proj"', mock_stdout.getvalue())

    @patch("gnash.__main__.analyze_project")
    def test_analysis_errors_exit_with_1(self, mock_analyze):
        self.make_project()
        mock_analyze.side_effect = ManifestNotFound("package.json")

        with patch("sys.stderr", new_callable=io.StringIO):
            self.assertEqual(main([self.project]), 1)

    def test_bad_config(self):
        self.make_project()
        with open(os.path.join(self.project, ".gnash.toml"), "w") as f:
            f.write("[gnash]\nmax_open_files = -1\n")

        with patch("sys.stderr", new_callable=io.StringIO):
            self.assertEqual(main([self.project]), 1)

    @patch("gnash.app.GnashApp.run")
    def test_tui_mode(self, mock_run):
        self.make_project()
        log_file = os.path.join(self.project, "gnash.log")
        with open(os.path.join(self.project, ".gnash.toml"), "w") as f:
            f.write(f"[gnash]\nlog_file = {json.dumps(log_file)}\n")

        self.assertEqual(main([self.project, "--tui"]), 0)
        mock_run.assert_called_once()


if __name__ == "__main__":
    unittest.main()
