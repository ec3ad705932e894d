import signal
import threading
from pathlib import Path
from typing import List, Optional, Sequence

from cling.util.config import Config
from cling.util.security import SecurityManager
from cling.util.output import Printer
from cling.index import NullSearchIndex, SearchIndex
from cling.runner.interpreters import InterpreterRegistry
from cling.runner.repository import ScriptRepository
from cling.runner.executor import ExecutionRequest, ScriptExecutor
from cling.runner.creator import EditorLauncher, ScriptCreator
from cling.lifecycle.instance import InstanceGuard, InstanceMatcher, is_instance_command
from cling.lifecycle.coordinator import LifecycleCoordinator

log = Printer("app")

class ClingApp:
    """
    Owns every long-lived cling object.

    Components receive their collaborators from here instead of reaching for
    module level singletons, so tests can build as many independent apps as they like.
    """

    def __init__(
        self,
        config: Config,
        index: Optional[SearchIndex] = None,
        matcher: InstanceMatcher = is_instance_command,
    ):
        """
        Initialize the ClingApp.

        Args:
            config (Config): Loaded Cling.toml.
            index (Optional[SearchIndex]): Search index fed with the script registry.
            matcher (InstanceMatcher): Recognizes other running instances by command line.
        """
        self.config = config
        self.index = index if index is not None else NullSearchIndex()
        self.matcher = matcher

        self.registry = InterpreterRegistry.with_custom(config.get_custom_interpreters())
        self.repository = ScriptRepository(
            self.registry,
            config.scripts_dir,
            shortcut_lookup=config.get_shortcut,
            index=self.index,
        )
        self.executor = ScriptExecutor(self.repository)
        self.editor = EditorLauncher(config.editor)
        self.creator = ScriptCreator(
            self.repository,
            editor=self.editor,
            default_shebang=config.default_shebang,
        )

        self.guard: Optional[InstanceGuard] = None
        self.coordinator: Optional[LifecycleCoordinator] = None
        self._stop = threading.Event()

    def environment(self):
        return SecurityManager.execution_env(self.config.get_env())

    def request(self, script_path: Path, files: Sequence[str] = (), capture_output: bool = True) -> ExecutionRequest:
        return ExecutionRequest.build(script_path, files, self.environment(), capture_output)

    def run_script(self, script_path: Path, files: Sequence[str] = (), wait: bool = False, capture_output: bool = True):
        """Run a script against files; returns the outcome when waiting, else the future."""
        request = self.request(script_path, files, capture_output=capture_output)
        if wait:
            return self.executor.run_and_wait(request)
        return self.executor.run(request)

    def edit_script(self, script_path: Path) -> bool:
        return self.editor.open(script_path)

    def open_folder(self) -> bool:
        """Show the script directory in the file manager, creating it first if needed."""
        directory = self.repository.directory
        directory.mkdir(parents=True, exist_ok=True)
        return self.editor.reveal(directory)

    def instance_guard(self, prefer_existing: bool = False) -> InstanceGuard:
        return InstanceGuard(self.config.pid_file, matcher=self.matcher, prefer_existing=prefer_existing)

    def running_instances(self) -> List[List[str]]:
        """Command lines of the cling instances currently running."""
        return [proc.info["cmdline"] for proc in self.instance_guard().find_duplicates()]

    def release(self):
        """Cleanup action shared by every termination path."""
        self.index.cleanup()
        self._stop.set()

    def boot(self, prefer_existing: bool = False) -> bool:
        """
        Become the single running instance and wire up cleanup.

        Returns:
            bool: False if another instance was kept and this one should exit.
        """
        self.guard = self.instance_guard(prefer_existing)
        if not self.guard.start():
            return False

        self.coordinator = LifecycleCoordinator(self.release, guard=self.guard)
        self.coordinator.install()
        if hasattr(signal, "SIGUSR1"):
            signal.signal(signal.SIGUSR1, lambda signum, frame: self.refresh())

        self.index.start()
        self.repository.scan()
        log.info(f"Serving {self.repository.directory} ({len(self.repository.entries())} scripts)")
        return True

    def refresh(self, full_reindex: bool = False):
        self.repository.refresh()
        self.index.refresh(full_reindex)

    def wait(self):
        """Block the main thread until cleanup has run."""
        while not self._stop.wait(timeout=0.5):
            pass

    def before_relaunch(self):
        """
        Updater hook.

        In the running instance this is the coordinator's cleanup. Called from
        another cling process, it stops the running instance with SIGTERM so
        that instance runs its own cleanup before the relaunch replaces it.
        """
        if self.coordinator is not None:
            self.coordinator.before_relaunch()
            return

        self.release()
        stopped = self.instance_guard().stop_running()
        if stopped:
            log.debug(f"Stopped running instance(s) {stopped} for relaunch")

    def shutdown(self):
        if self.coordinator is not None:
            self.coordinator.run_cleanup()
        else:
            self.release()
