import atexit
import signal
import sys
import threading
from typing import Callable, Dict, Optional

from cling.util.output import Printer
from cling.lifecycle.instance import InstanceGuard

log = Printer("lifecycle.coordinator")

def _termination_signals():
    names = ("SIGINT", "SIGTERM", "SIGHUP", "SIGKILL")
    return [getattr(signal, name) for name in names if hasattr(signal, name)]

class LifecycleCoordinator:
    """
    Runs cleanup exactly once, whichever way the process ends.

    Termination signals, interpreter exit and the updater's relaunch hook all
    funnel into run_cleanup(), which is latched so racing callers can't run the
    cleanup twice.
    """

    def __init__(
        self,
        cleanup: Callable[[], None],
        guard: Optional[InstanceGuard] = None,
        exit_func: Callable[[int], None] = sys.exit,
        exit_code: int = 0,
    ):
        """
        Initialize the LifecycleCoordinator.

        Args:
            cleanup (Callable[[], None]): Releases external resources, e.g. the search index.
            guard (Optional[InstanceGuard]): Guard whose pid marker is removed on cleanup.
            exit_func (Callable[[int], None]): Called after cleanup in a signal handler.
            exit_code (int): Exit status used after a termination signal.
        """
        self.cleanup = cleanup
        self.guard = guard
        self.exit_func = exit_func
        self.exit_code = exit_code
        self._latch = threading.Lock()
        self._claim = threading.RLock()
        self._finished = threading.Event()
        self._cleanup_thread: Optional[int] = None
        self._previous: Dict[int, object] = {}
        self._installed = False

    @property
    def cleaned_up(self) -> bool:
        return self._latch.locked()

    def _try_claim(self) -> bool:
        # Reentrant: a nested signal can land on the owning thread mid-claim
        with self._claim:
            # Never released: the first caller wins for the life of the process
            if not self._latch.acquire(blocking=False):
                return False
            self._cleanup_thread = threading.get_ident()
            return True

    def run_cleanup(self) -> bool:
        """
        Run the cleanup callback unless it already ran.

        Errors are logged and swallowed: the process is going away regardless.
        The pid marker is released even when the callback is cut short.

        Returns:
            bool: True if this call performed the cleanup.
        """
        if not self._try_claim():
            return False

        try:
            self.cleanup()
        except Exception as e:
            log.debug(f"Cleanup failed: {e}")
        finally:
            if self.guard is not None:
                self.guard.release()
            self._finished.set()
        return True

    def handle_signal(self, signum, frame=None):
        """
        Clean up and exit.

        A signal landing while this thread is already inside the cleanup (a second
        Ctrl-C, say) is dropped so the cleanup can finish; the outer handler exits.
        On any other thread the exit waits until the cleanup is done.
        """
        log.debug(f"Received signal {signum}, shutting down")
        if not self.run_cleanup():
            if not self._finished.is_set() and self._cleanup_thread in (None, threading.get_ident()):
                log.debug(f"Cleanup in progress, ignoring signal {signum}")
                return
            self._finished.wait()
        self.exit_func(self.exit_code)

    def before_relaunch(self):
        """Hook for the updater: clean up, then let the relaunch go ahead."""
        log.debug("Relaunching for update")
        self.run_cleanup()

    def install(self):
        """
        Register the signal handlers and the exit hook.

        Must be called from the main thread. Signals the OS won't let us catch
        (SIGKILL) are skipped.
        """
        if self._installed:
            return

        for sig in _termination_signals():
            try:
                self._previous[sig] = signal.signal(sig, self.handle_signal)
            except (OSError, ValueError, RuntimeError) as e:
                log.debug(f"Cannot handle {signal.Signals(sig).name}: {e}")

        atexit.register(self.run_cleanup)
        self._installed = True

    def uninstall(self):
        """Restore the handlers that were active before install()."""
        for sig, previous in self._previous.items():
            try:
                signal.signal(sig, previous)
            except (OSError, ValueError, RuntimeError, TypeError):
                pass
        self._previous.clear()
        atexit.unregister(self.run_cleanup)
        self._installed = False
