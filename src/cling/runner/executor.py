import os
import subprocess as spc
import threading
from concurrent.futures import Future
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Mapping, Optional, Sequence, Tuple

from cling.util.output import Printer, Colors
from cling.util.errors import NotFound, NotExecutable, SpawnFailed
from cling.runner.interpreters import Interpreter, SHEBANG_MARKER
from cling.runner.repository import ScriptRepository

log = Printer("runner.executor")

@dataclass(frozen=True)
class ExecutionRequest:
    """One invocation of a script against a list of files."""
    script_path: Path
    arguments: Tuple[str, ...] = ()
    environment: Mapping[str, str] = field(default_factory=dict)
    capture_output: bool = True

    @classmethod
    def build(cls, script_path, arguments: Sequence = (), environment: Optional[Mapping[str, str]] = None,
              capture_output: bool = True) -> "ExecutionRequest":
        return cls(
            script_path=Path(script_path),
            arguments=tuple(str(a) for a in arguments),
            environment=dict(environment or {}),
            capture_output=capture_output,
        )

@dataclass
class ExecutionOutcome:
    script_path: Path
    pid: int
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0

class ScriptExecutor:
    """
    Runs scripts as subprocesses without holding up the caller.

    The process is started on the calling thread so spawn errors are reported
    right away; waiting for it and collecting its output happens on a daemon thread.
    """

    def __init__(self, repository: ScriptRepository):
        """
        Initialize the ScriptExecutor.

        Args:
            repository (ScriptRepository): Source of interpreter resolution for scripts.
        """
        self.repository = repository
        self.is_posix = os.name == "posix"

    def _has_shebang(self, path: Path) -> bool:
        try:
            with open(path, "rb") as f:
                return f.read(len(SHEBANG_MARKER)) == SHEBANG_MARKER.encode()
        except OSError:
            return False

    def _interpreter_for(self, path: Path) -> Optional[Interpreter]:
        entry = self.repository.get(path)
        if entry is not None:
            return entry.interpreter
        try:
            return self.repository.resolve(path)
        except OSError:
            return None

    def build_command(self, request: ExecutionRequest) -> List[str]:
        """
        Decide how to launch the script.

        Executable scripts with a shebang are started directly and the OS loader
        honors the shebang; otherwise the resolved interpreter is invoked with the
        script prepended to the arguments.

        Args:
            request (ExecutionRequest): The invocation.

        Returns:
            List[str]: Command components.

        Raises:
            NotFound: If the script doesn't exist.
            NotExecutable: If it can't be executed and no interpreter is known.
        """
        path = request.script_path
        if not path.exists():
            raise NotFound(f"Script not found: {path}")
        if path.is_dir():
            raise NotExecutable(f"{path} is a directory")

        executable = os.access(path, os.X_OK)
        # Absolute so a bare file name is never looked up on PATH
        target = str(path.absolute())
        if executable and self._has_shebang(path):
            return [target, *request.arguments]

        interpreter = self._interpreter_for(path)
        if interpreter is not None:
            return [interpreter.executable_path, str(path), *request.arguments]

        if executable:
            return [target, *request.arguments]

        raise NotExecutable(f"{path.name} is not executable and no interpreter matches it")

    def run(self, request: ExecutionRequest) -> "Future[ExecutionOutcome]":
        """
        Start a script and return immediately.

        Args:
            request (ExecutionRequest): The invocation.

        Returns:
            Future[ExecutionOutcome]: Resolves once the script exits.

        Raises:
            NotFound, NotExecutable: See build_command.
            SpawnFailed: If the OS can't start the process.
        """
        cmd = self.build_command(request)
        log.debug(" ".join(cmd), script=request.script_path.name)

        output = spc.PIPE if request.capture_output else spc.DEVNULL
        try:
            proc = spc.Popen(
                cmd,
                stdin=spc.DEVNULL,
                stdout=output,
                stderr=output,
                env=dict(request.environment),
                text=True,
                errors="replace",
                # Own session: the script outlives the launcher and its signals
                start_new_session=self.is_posix,
            )
        except OSError as e:
            raise SpawnFailed(e.strerror or str(e)) from e
        log.action("RUN", f"{len(request.arguments)} file(s)", script=request.script_path.name, pid=proc.pid)

        future: Future = Future()
        future.set_running_or_notify_cancel()
        threading.Thread(
            target=self._collect, args=(proc, request, future), name=f"cling-run-{proc.pid}", daemon=True
        ).start()
        return future

    def run_and_wait(self, request: ExecutionRequest) -> ExecutionOutcome:
        """Start a script and block until it finishes."""
        return self.run(request).result()

    def _collect(self, proc: spc.Popen, request: ExecutionRequest, future: Future):
        try:
            stdout, stderr = proc.communicate()
        except Exception as e:
            future.set_exception(e)
            return

        outcome = ExecutionOutcome(
            script_path=request.script_path,
            pid=proc.pid,
            returncode=proc.returncode,
            stdout=stdout or "",
            stderr=stderr or "",
        )
        if outcome.ok:
            log.action("DONE", "finished", Colors.GRAY, script=request.script_path.name, pid=proc.pid)
        else:
            log.warning(f"exited with code {proc.returncode}", script=request.script_path.name, pid=proc.pid)
        future.set_result(outcome)
