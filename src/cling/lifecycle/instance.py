import enum
import os
import signal
from pathlib import Path
from typing import Callable, List, Optional, Sequence

import psutil

from cling.util.output import Printer, Colors
from cling.util.errors import IOFailure

log = Printer("lifecycle.instance")

PROGRAM_NAME = "cling"
START_COMMAND = "start"
# Global options that take a value and so hide the subcommand behind them
VALUE_OPTIONS = ("-c", "--config")
# SIGKILL doesn't exist on Windows, where os.kill with SIGTERM terminates unconditionally
STALE_SIGNAL = getattr(signal, "SIGKILL", signal.SIGTERM)

InstanceMatcher = Callable[[Sequence[str]], bool]

def _program_and_args(cmdline: Sequence[str]):
    args = list(cmdline)
    if args and Path(args[0]).name.lower().startswith("python"):
        args = args[1:]
        while args and args[0].startswith("-") and args[0] != "-m":
            args = args[2:] if args[0] in ("-X", "-W") else args[1:]
        if args[:1] == ["-m"]:
            return (args[1] if len(args) > 1 else ""), args[2:]
    if not args:
        return "", []

    program = Path(args[0])
    if program.name == "__main__.py":
        program = program.parent
    return program.stem, args[1:]

def _subcommand(args: Sequence[str]) -> Optional[str]:
    skip = False
    for arg in args:
        if skip:
            skip = False
        elif arg in VALUE_OPTIONS:
            skip = True
        elif not arg.startswith("-"):
            return arg
    return None

def is_instance_command(cmdline: Optional[Sequence[str]]) -> bool:
    """
    Whether a command line starts the long-lived cling instance.

    Every way of launching it counts: the console script, "python -m cling",
    a python running the cling script, with any global options or start flags.
    """
    if not cmdline:
        return False
    program, args = _program_and_args(cmdline)
    return program == PROGRAM_NAME and _subcommand(args) == START_COMMAND

class GuardState(enum.Enum):
    STARTING = "starting"
    SINGLE_INSTANCE_CONFIRMED = "single-instance-confirmed"
    RUNNING = "running"
    TERMINATED = "terminated"

class InstanceGuard:
    """
    Makes sure only one cling instance is alive.

    On start, other processes running cling's start command are terminated
    (SIGTERM first, so their own cleanup runs), the process recorded in the pid
    marker by an earlier run is killed, and the marker is rewritten with the
    current pid.
    """

    def __init__(
        self,
        marker_path: Path,
        matcher: InstanceMatcher = is_instance_command,
        terminate_timeout: float = 3.0,
        prefer_existing: bool = False,
    ):
        """
        Initialize the InstanceGuard.

        Args:
            marker_path (Path): File holding the pid of the last live instance.
            matcher (InstanceMatcher): Tells from a command line whether a process is
                a cling instance.
            terminate_timeout (float): Seconds to wait for a duplicate to exit before killing it.
            prefer_existing (bool): Exit instead of replacing an already running instance.
        """
        self.marker_path = Path(marker_path)
        self.pid = os.getpid()
        self.matcher = matcher
        self.terminate_timeout = terminate_timeout
        self.prefer_existing = prefer_existing
        self.state = GuardState.STARTING

    def find_duplicates(self) -> List[psutil.Process]:
        """Running cling instances other than this process."""
        duplicates = []
        for proc in psutil.process_iter(["pid", "cmdline"]):
            if proc.info["pid"] == self.pid:
                continue
            if self.matcher(proc.info["cmdline"]):
                duplicates.append(proc)
        return duplicates

    def stop_running(self) -> List[int]:
        """
        Terminate every running instance without claiming the marker.

        Used by the updater, whose relaunch replaces the live instance.

        Returns:
            List[int]: Pids that were asked to stop.
        """
        duplicates = self.find_duplicates()
        if duplicates:
            self._terminate(duplicates)
        return [proc.pid for proc in duplicates]

    def _terminate(self, procs: List[psutil.Process]):
        for proc in procs:
            log.action("REPLACE", "Terminating running instance", Colors.YELLOW, pid=proc.pid)
            try:
                proc.terminate()
            except psutil.NoSuchProcess:
                pass
            except psutil.AccessDenied as e:
                log.warning(f"Not allowed to terminate pid {proc.pid}: {e}")

        _, alive = psutil.wait_procs(procs, timeout=self.terminate_timeout)
        for proc in alive:
            log.warning(f"Instance {proc.pid} ignored SIGTERM, killing it")
            try:
                proc.kill()
            except psutil.NoSuchProcess:
                pass
            except psutil.AccessDenied as e:
                log.warning(f"Not allowed to kill pid {proc.pid}: {e}")

    def read_marker(self) -> Optional[int]:
        """
        Read the pid left by the previous run.

        Returns:
            Optional[int]: The recorded pid, or None if the marker is missing or garbage.
        """
        try:
            content = self.marker_path.read_text(encoding="utf-8").strip()
        except FileNotFoundError:
            return None
        except OSError as e:
            log.warning(f"Cannot read pid marker {self.marker_path}: {e}")
            return None

        try:
            pid = int(content)
        except ValueError:
            log.debug(f"Ignoring malformed pid marker: {content!r}")
            return None
        return pid if pid > 0 else None

    def reap_stale(self, pid: int):
        """Kill the process named by the marker. A pid that no longer exists is fine."""
        if pid == self.pid:
            return
        log.debug(f"Killing old process: {pid}")
        try:
            os.kill(pid, STALE_SIGNAL)
        except ProcessLookupError:
            log.debug(f"Old process {pid} is already gone")
        except PermissionError:
            log.warning(f"Pid {pid} from the marker belongs to someone else, leaving it alone")
        except OSError as e:
            log.debug(f"Could not signal old process {pid}: {e}")

    def write_marker(self):
        """
        Record the current pid, replacing any previous content.

        Raises:
            IOFailure: If the marker can't be written.
        """
        try:
            self.marker_path.parent.mkdir(parents=True, exist_ok=True)
            self.marker_path.write_text(str(self.pid), encoding="utf-8")
        except OSError as e:
            raise IOFailure(f"Failed to write pid marker {self.marker_path}: {e}") from e

    def start(self) -> bool:
        """
        Run the startup sequence.

        Returns:
            bool: True once this process is the running instance; False if another
            instance was kept and this one should exit.

        Raises:
            IOFailure: If the pid marker can't be written.
        """
        duplicates = self.find_duplicates()
        if duplicates and self.prefer_existing:
            log.info(f"cling is already running (pid {duplicates[0].pid})")
            self.state = GuardState.TERMINATED
            return False

        if duplicates:
            self._terminate(duplicates)
        self.state = GuardState.SINGLE_INSTANCE_CONFIRMED

        stale_pid = self.read_marker()
        if stale_pid is not None:
            self.reap_stale(stale_pid)

        self.write_marker()
        self.state = GuardState.RUNNING
        return True

    def release(self):
        """Remove the marker if it still names this process. Never raises."""
        try:
            if self.read_marker() == self.pid:
                self.marker_path.unlink()
        except OSError:
            pass
