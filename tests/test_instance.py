import unittest
from unittest.mock import MagicMock, patch
from pathlib import Path
import sys
import os
import shutil
import subprocess as spc
import tempfile
import time

import psutil

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '../src')))

from cling.lifecycle.instance import InstanceGuard, GuardState, STALE_SIGNAL, is_instance_command
from cling.util.errors import IOFailure

# Above any real pid_max, so signalling it can only fail with "no such process"
UNUSED_PID = 2**31 - 2

class TestInstanceGuard(unittest.TestCase):
    def setUp(self):
        self.test_dir = Path(tempfile.mkdtemp())
        self.marker = self.test_dir / "run" / "cling.pid"

    def tearDown(self):
        shutil.rmtree(self.test_dir)

    def guard(self, **kwargs):
        kwargs.setdefault("matcher", lambda cmdline: False)
        return InstanceGuard(self.marker, **kwargs)

    def test_fresh_start_writes_marker(self):
        guard = self.guard()
        self.assertEqual(guard.state, GuardState.STARTING)
        self.assertTrue(guard.start())
        self.assertEqual(guard.state, GuardState.RUNNING)
        self.assertEqual(self.marker.read_text(), str(os.getpid()))

    def test_stale_marker_naming_dead_pid(self):
        self.marker.parent.mkdir(parents=True)
        self.assertFalse(psutil.pid_exists(UNUSED_PID))
        self.marker.write_text(str(UNUSED_PID))
        guard = self.guard()
        self.assertTrue(guard.start())
        self.assertEqual(int(self.marker.read_text()), os.getpid())

    @patch("os.kill", side_effect=ProcessLookupError(3, "No such process"))
    def test_stale_pid_signal_failure_is_ignored(self, mock_kill):
        self.marker.parent.mkdir(parents=True)
        self.marker.write_text("999999")
        self.assertTrue(self.guard().start())
        mock_kill.assert_called_once_with(999999, STALE_SIGNAL)
        self.assertEqual(self.marker.read_text(), str(os.getpid()))

    @patch("os.kill", side_effect=PermissionError(1, "Operation not permitted"))
    def test_foreign_pid_is_left_alone(self, mock_kill):
        self.marker.parent.mkdir(parents=True)
        self.marker.write_text("1")
        self.assertTrue(self.guard().start())
        self.assertEqual(self.marker.read_text(), str(os.getpid()))

    @patch("os.kill")
    def test_own_pid_in_marker_is_not_signalled(self, mock_kill):
        self.marker.parent.mkdir(parents=True)
        self.marker.write_text(str(os.getpid()))
        self.guard().start()
        mock_kill.assert_not_called()

    @patch("os.kill")
    def test_garbage_marker_is_ignored(self, mock_kill):
        self.marker.parent.mkdir(parents=True)
        self.marker.write_text("not a pid")
        self.assertTrue(self.guard().start())
        mock_kill.assert_not_called()
        self.assertEqual(self.marker.read_text(), str(os.getpid()))

    def test_marker_write_failure(self):
        guard = self.guard()
        with patch("pathlib.Path.write_text", side_effect=PermissionError(13, "Permission denied")):
            with self.assertRaises(IOFailure):
                guard.start()

    def test_release_removes_own_marker_only(self):
        guard = self.guard()
        guard.start()
        guard.release()
        self.assertFalse(self.marker.exists())

        self.marker.write_text("12345")
        guard.release()
        self.assertEqual(self.marker.read_text(), "12345")

    def test_release_without_marker(self):
        self.guard().release()

    @unittest.skipIf(os.name != "posix", "uses POSIX signals")
    def test_duplicate_instance_is_terminated(self):
        command = [sys.executable, "-c", "import time; time.sleep(60)", "cling-dup-test"]
        dup = spc.Popen(command)
        try:
            # Wait until the child has exec'd so its cmdline is visible
            for _ in range(50):
                if psutil.Process(dup.pid).cmdline() == command:
                    break
                time.sleep(0.05)
            guard = self.guard(matcher=lambda cmdline: cmdline == command, terminate_timeout=5)
            self.assertEqual([p.pid for p in guard.find_duplicates()], [dup.pid])
            self.assertTrue(guard.start())
            self.assertIsNotNone(dup.wait(timeout=5))
        finally:
            if dup.poll() is None:
                dup.kill()
                dup.wait()

    def test_survivor_is_killed(self):
        proc = MagicMock(pid=4242)
        guard = self.guard()
        with patch.object(guard, "find_duplicates", return_value=[proc]), \
             patch("psutil.wait_procs", return_value=([], [proc])):
            guard.start()
        proc.terminate.assert_called_once()
        proc.kill.assert_called_once()

    def test_prefer_existing_terminates_self(self):
        proc = MagicMock(pid=4242)
        guard = self.guard(prefer_existing=True)
        with patch.object(guard, "find_duplicates", return_value=[proc]):
            self.assertFalse(guard.start())
        self.assertEqual(guard.state, GuardState.TERMINATED)
        proc.terminate.assert_not_called()
        self.assertFalse(self.marker.exists())

    def test_duplicate_lookup_skips_self(self):
        me = {"pid": os.getpid(), "cmdline": ["x"]}
        other = {"pid": os.getpid() + 1, "cmdline": ["x"]}
        procs = [MagicMock(info=me), MagicMock(info=other)]
        with patch("psutil.process_iter", return_value=procs):
            found = self.guard(matcher=lambda cmdline: cmdline == ["x"]).find_duplicates()
        self.assertEqual(found, [procs[1]])

    def test_stop_running_terminates_without_claiming_marker(self):
        proc = MagicMock(pid=4242)
        guard = self.guard()
        with patch.object(guard, "find_duplicates", return_value=[proc]), \
             patch("psutil.wait_procs", return_value=([proc], [])):
            self.assertEqual(guard.stop_running(), [4242])
        proc.terminate.assert_called_once()
        proc.kill.assert_not_called()
        self.assertFalse(self.marker.exists())

SRC_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), '../src'))

LIVE_INSTANCE = '''
import sys
import time
sys.path.insert(0, {src!r})
from pathlib import Path
from cling.lifecycle.instance import InstanceGuard
from cling.lifecycle.coordinator import LifecycleCoordinator

guard = InstanceGuard(Path({marker!r}), matcher=lambda cmdline: False)
guard.start()
coordinator = LifecycleCoordinator(lambda: Path({flag!r}).write_text("cleaned"), guard=guard)
coordinator.install()
Path({ready!r}).write_text("ready")
while True:
    time.sleep(0.1)
'''

class TestInstanceReplacement(unittest.TestCase):
    def setUp(self):
        self.test_dir = Path(tempfile.mkdtemp())
        self.marker = self.test_dir / "cling.pid"
        self.flag = self.test_dir / "cleaned"
        self.ready = self.test_dir / "ready"

    def tearDown(self):
        shutil.rmtree(self.test_dir)

    @unittest.skipIf(os.name != "posix", "uses POSIX signals")
    def test_replacement_started_differently_lets_old_instance_clean_up(self):
        script = self.test_dir / "cling"
        script.write_text(LIVE_INSTANCE.format(
            src=SRC_DIR, marker=str(self.marker), flag=str(self.flag), ready=str(self.ready)))
        old = spc.Popen([sys.executable, str(script), "--config", "other.toml", "start", "--no-replace"])
        try:
            for _ in range(200):
                if self.ready.exists():
                    break
                time.sleep(0.05)
            self.assertTrue(self.ready.exists())
            self.assertEqual(self.marker.read_text(), str(old.pid))

            # Same app, launched as "python -m cling start" would be; scoped to the test's script
            matcher = lambda cmdline: is_instance_command(cmdline) and str(script) in cmdline
            guard = InstanceGuard(self.marker, matcher=matcher, terminate_timeout=10)
            self.assertTrue(guard.start())

            self.assertEqual(old.wait(timeout=10), 0)
            self.assertEqual(self.flag.read_text(), "cleaned")
            self.assertEqual(self.marker.read_text(), str(os.getpid()))
            guard.release()
        finally:
            if old.poll() is None:
                old.kill()
                old.wait()

class TestInstanceCommand(unittest.TestCase):
    def test_every_launch_form_of_start_matches(self):
        for cmdline in (
            ["cling", "start"],
            ["/usr/local/bin/cling", "--debug", "start", "--no-replace"],
            ["/usr/bin/python3", "/usr/local/bin/cling", "start"],
            ["python3", "-m", "cling", "-c", "/tmp/Cling.toml", "start"],
            ["python3.12", "-u", "-m", "cling", "start"],
            ["python", "/src/cling/__main__.py", "start"],
            ["/opt/cling/bin/cling.exe", "start"],
        ):
            with self.subTest(cmdline=cmdline):
                self.assertTrue(is_instance_command(cmdline))

    def test_other_commands_do_not_match(self):
        for cmdline in (
            None,
            [],
            ["cling"],
            ["cling", "run", "start"],
            ["cling", "-c", "start", "list"],
            ["python3", "-m", "clingy", "start"],
            ["python3", "-m"],
            ["/bin/sh", "start"],
        ):
            with self.subTest(cmdline=cmdline):
                self.assertFalse(is_instance_command(cmdline))

if __name__ == '__main__':
    unittest.main()
