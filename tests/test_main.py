import unittest
from unittest.mock import MagicMock, patch
from pathlib import Path
import sys
import os
import io
import shutil
import tempfile
from contextlib import redirect_stderr, redirect_stdout

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '../src')))

from cling.main import main
from cling.app import ClingApp
from cling.index import NullSearchIndex
from cling.util.config import Config

class TestMain(unittest.TestCase):
    def setUp(self):
        self.test_dir = Path(tempfile.mkdtemp())
        self.scripts = self.test_dir / "scripts"
        self.scripts.mkdir()
        self.config_path = self.test_dir / "Cling.toml"
        self.config_path.write_text(
            f'scripts_dir = "{self.scripts.as_posix()}"\n'
            f'pid_file = "{(self.test_dir / "cling.pid").as_posix()}"\n'
            'editor = "myeditor --wait"\n'
            '[shortcuts]\n"hello.sh" = "h"\n'
            '[env]\nCLING_GREETING = "hello"\n'
        )

    def tearDown(self):
        shutil.rmtree(self.test_dir)

    def cli(self, *argv):
        out = io.StringIO()
        with redirect_stdout(out):
            code = main(["--config", str(self.config_path), *argv])
        return code, out.getvalue()

    def test_list(self):
        (self.scripts / "hello.sh").write_text("#!/bin/sh\n")
        code, out = self.cli("list")
        self.assertEqual(code, 0)
        self.assertIn("hello", out)
        self.assertIn("[H]", out)

    def test_interpreters(self):
        code, out = self.cli("interpreters")
        self.assertEqual(code, 0)
        self.assertIn("/usr/local/bin/node", out)

    def test_create_unknown_interpreter(self):
        code, _ = self.cli("create", "x", "-i", "cobol")
        self.assertEqual(code, 1)

    def test_create(self):
        code, _ = self.cli("create", "New Tool", "-i", "python3", "--no-edit")
        self.assertEqual(code, 0)
        self.assertEqual((self.scripts / "New Tool.py").read_text(), "#!/usr/bin/python3\n")

    def test_run_missing(self):
        code, _ = self.cli("run", "nothing-here")
        self.assertEqual(code, 1)

    @unittest.skipIf(os.name != "posix" or not os.path.exists("/bin/sh"), "needs /bin/sh")
    def test_run_by_shortcut(self):
        script = self.scripts / "hello.sh"
        script.write_text('#!/bin/sh\necho "$CLING_GREETING $1"\n')
        script.chmod(0o755)
        code, out = self.cli("run", "h", "world")
        self.assertEqual(code, 0)
        self.assertIn("hello world", out)

    def test_invalid_config(self):
        self.config_path.write_text('[shortcuts]\n"a.sh" = "abc"\n')
        code, _ = self.cli("list")
        self.assertEqual(code, 1)

    def test_update_without_repo(self):
        code, _ = self.cli("update")
        self.assertEqual(code, 1)

    @patch("cling.runner.creator.spc.Popen")
    def test_edit_by_shortcut(self, mock_popen):
        (self.scripts / "hello.sh").write_text("#!/bin/sh\n")
        code, _ = self.cli("edit", "h")
        self.assertEqual(code, 0)
        self.assertEqual(mock_popen.call_args[0][0], ["myeditor", "--wait", str(self.scripts / "hello.sh")])

    @patch("cling.runner.creator.spc.Popen")
    def test_edit_missing_script(self, mock_popen):
        code, _ = self.cli("edit", "nothing-here")
        self.assertEqual(code, 1)
        mock_popen.assert_not_called()

    @patch("cling.runner.creator.shutil.which", return_value="/usr/bin/xdg-open")
    @patch("cling.runner.creator.spc.Popen")
    def test_open_folder_creates_and_reveals_directory(self, mock_popen, mock_which):
        shutil.rmtree(self.scripts)
        code, _ = self.cli("open-folder")
        self.assertEqual(code, 0)
        self.assertTrue(self.scripts.is_dir())
        self.assertEqual(mock_popen.call_args[0][0][-1], str(self.scripts))

    @patch("cling.runner.creator.shutil.which", return_value=None)
    @patch("cling.runner.creator.spc.Popen")
    def test_open_folder_without_opener(self, mock_popen, mock_which):
        code, _ = self.cli("open-folder")
        self.assertEqual(code, 1)
        mock_popen.assert_not_called()

    def test_create_custom_uses_default_shebang(self):
        code, _ = self.cli("create", "Tool", "--custom", "--no-edit")
        self.assertEqual(code, 0)
        self.assertEqual((self.scripts / "Tool.sh").read_text(), "#!/bin/sh\n")

    def test_custom_excludes_interpreter(self):
        with redirect_stderr(io.StringIO()), self.assertRaises(SystemExit):
            self.cli("create", "Tool", "--custom", "-i", "python3")

    def update_config(self):
        with open(self.config_path, "r+", encoding="utf-8") as f:
            content = f.read()
            f.seek(0)
            f.write('update_repo = "owner/static-cling"\n' + content)

    @patch("cling.main.update")
    def test_update_relaunches_running_instance_as_started(self, mock_update):
        self.update_config()
        started = ["/usr/bin/python3", "/usr/local/bin/cling", "-c", "x.toml", "start"]
        with patch.object(ClingApp, "running_instances", return_value=[started]):
            code, _ = self.cli("update")
        self.assertEqual(code, 0)
        self.assertEqual(mock_update.call_args.kwargs["relaunch_cmd"], started)

    @patch("cling.main.update")
    def test_update_without_running_instance_does_not_relaunch(self, mock_update):
        self.update_config()
        with patch.object(ClingApp, "running_instances", return_value=[]):
            self.cli("update")
        self.assertIsNone(mock_update.call_args.kwargs["relaunch_cmd"])

class TestClingApp(unittest.TestCase):
    def setUp(self):
        self.test_dir = Path(tempfile.mkdtemp())
        self.config = Config.from_dict({
            "scripts_dir": str(self.test_dir / "scripts"),
            "pid_file": str(self.test_dir / "cling.pid"),
        })
        self.index = NullSearchIndex()
        self.app = ClingApp(self.config, index=self.index, matcher=lambda cmdline: False)

    def tearDown(self):
        if self.app.coordinator is not None:
            self.app.coordinator.uninstall()
        shutil.rmtree(self.test_dir)

    def test_boot_and_shutdown(self):
        with patch("atexit.register"), patch("signal.signal"):
            self.assertTrue(self.app.boot())
        self.assertTrue(self.index.running)
        self.assertEqual((self.test_dir / "cling.pid").read_text(), str(os.getpid()))

        self.app.shutdown()
        self.app.shutdown()
        self.assertFalse(self.index.running)
        self.assertFalse((self.test_dir / "cling.pid").exists())
        # wait() returns once cleanup has run
        self.app.wait()

    def test_before_relaunch_without_boot_stops_running_instance(self):
        self.index.start()
        with patch("cling.app.InstanceGuard.stop_running", return_value=[4242]) as mock_stop:
            self.app.before_relaunch()
        self.assertFalse(self.index.running)
        mock_stop.assert_called_once()

    def test_before_relaunch_in_running_instance_cleans_up_itself(self):
        with patch("atexit.register"), patch("signal.signal"):
            self.app.boot()
        with patch("cling.app.InstanceGuard.stop_running") as mock_stop:
            self.app.before_relaunch()
        mock_stop.assert_not_called()
        self.assertTrue(self.app.coordinator.cleaned_up)
        self.assertFalse((self.test_dir / "cling.pid").exists())

    def test_running_instances_reports_command_lines(self):
        app = ClingApp(self.config)
        procs = [
            MagicMock(info={"pid": os.getpid() + 1, "cmdline": ["python3", "-m", "cling", "start"]}),
            MagicMock(info={"pid": os.getpid() + 2, "cmdline": ["cling", "list"]}),
        ]
        with patch("psutil.process_iter", return_value=procs):
            self.assertEqual(app.running_instances(), [["python3", "-m", "cling", "start"]])

    def test_environment_includes_config(self):
        config = Config.from_dict({"env": {"CLING_X": "1"}})
        self.assertEqual(ClingApp(config).environment()["CLING_X"], "1")

if __name__ == '__main__':
    unittest.main()
