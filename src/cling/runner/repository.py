import threading
from concurrent.futures import Future
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple

from cling.util.output import Printer
from cling.runner.interpreters import Interpreter, InterpreterRegistry, SHEBANG_MARKER

log = Printer("runner.repository")

ShortcutLookup = Callable[[Path], Optional[str]]

@dataclass(frozen=True)
class ScriptEntry:
    """One discoverable script. A None interpreter means the file's own shebang decides."""
    path: Path
    interpreter: Optional[Interpreter] = None
    shortcut: Optional[str] = None

    @property
    def name(self) -> str:
        return self.path.stem

@dataclass(frozen=True)
class _Snapshot:
    entries: Tuple[ScriptEntry, ...] = ()
    by_path: Dict[Path, ScriptEntry] = field(default_factory=dict)
    shortcuts: Dict[str, Path] = field(default_factory=dict)

class ScriptRepository:
    """
    Keeps the set of scripts found in the scripts directory.

    Every scan builds a complete new snapshot and swaps it in at once, so readers
    see either the previous scan or the new one, never a mix.
    """

    def __init__(
        self,
        registry: InterpreterRegistry,
        directory: Path,
        shortcut_lookup: Optional[ShortcutLookup] = None,
        index=None,
    ):
        """
        Initialize the ScriptRepository.

        Args:
            registry (InterpreterRegistry): Catalog used to resolve interpreters.
            directory (Path): Default directory to scan.
            shortcut_lookup (Optional[ShortcutLookup]): Returns the key bound to a script path.
            index: Search index receiving the script/shortcut registry after each scan.
        """
        self.registry = registry
        self.directory = Path(directory)
        self.shortcut_lookup = shortcut_lookup
        self.index = index
        self._lock = threading.Lock()
        self._snapshot = _Snapshot()

    def resolve(self, path: Path) -> Optional[Interpreter]:
        """
        Work out which interpreter runs a script.

        Args:
            path (Path): Script file.

        Returns:
            Optional[Interpreter]: Interpreter from the shebang line if there is one,
            else from the file extension, else None.

        Raises:
            OSError: If the file can't be read.
        """
        with open(path, "r", encoding="utf-8", errors="replace") as f:
            first_line = f.readline().strip()

        if first_line.startswith(SHEBANG_MARKER):
            return self.registry.resolve_by_shebang(first_line)
        return self.registry.resolve_by_extension(path.suffix)

    def _list_files(self, directory: Path) -> List[Path]:
        try:
            children = sorted(directory.iterdir())
        except OSError as e:
            # Missing or unreadable directory: nothing to list
            log.debug(f"Cannot list {directory}: {e}")
            return []

        files = []
        for child in children:
            if child.name.startswith("."):
                continue
            try:
                if child.is_file():
                    files.append(child)
            except OSError:
                continue
        return files

    def _lookup_shortcut(self, path: Path) -> Optional[str]:
        if not self.shortcut_lookup:
            return None
        try:
            key = self.shortcut_lookup(path)
        except Exception as e:
            log.debug(f"Shortcut lookup failed for {path.name}: {e}")
            return None
        if key and len(key) == 1:
            return key
        return None

    def scan(self, directory: Optional[Path] = None) -> Tuple[ScriptEntry, ...]:
        """
        Rebuild the script list from the files directly under the directory.

        Unreadable files are left out. Never raises.

        Args:
            directory (Optional[Path]): Directory to scan, defaults to the configured one.

        Returns:
            Tuple[ScriptEntry, ...]: The new entries, sorted by path.
        """
        directory = Path(directory) if directory else self.directory

        resolved: List[Tuple[Path, Optional[Interpreter]]] = []
        shortcuts: Dict[str, Path] = {}
        for path in self._list_files(directory):
            try:
                interpreter = self.resolve(path)
            except OSError as e:
                log.debug(f"Skipping unreadable script {path}: {e}")
                continue

            resolved.append((path, interpreter))
            key = self._lookup_shortcut(path)
            if key:
                if key in shortcuts:
                    log.debug(f"Shortcut '{key}' moves from {shortcuts[key].name} to {path.name}")
                shortcuts[key] = path

        bound = {path: key for key, path in shortcuts.items()}
        entries = tuple(
            ScriptEntry(path=path, interpreter=interpreter, shortcut=bound.get(path))
            for path, interpreter in resolved
        )
        snapshot = _Snapshot(
            entries=entries,
            by_path={entry.path: entry for entry in entries},
            shortcuts=shortcuts,
        )

        with self._lock:
            self._snapshot = snapshot

        log.debug(f"Scanned {directory}: {len(entries)} script(s)")
        self._publish(snapshot)
        return entries

    def _publish(self, snapshot: _Snapshot):
        if self.index is None:
            return
        try:
            self.index.publish_scripts({entry.path: entry.shortcut for entry in snapshot.entries})
        except Exception as e:
            log.warning(f"Search index rejected script registry: {e}")

    def refresh(self) -> "Future[Tuple[ScriptEntry, ...]]":
        """Scan on a background thread so the caller isn't blocked by disk I/O."""
        future: Future = Future()

        def work():
            future.set_running_or_notify_cancel()
            try:
                future.set_result(self.scan())
            except BaseException as e:
                future.set_exception(e)

        threading.Thread(target=work, name="cling-scan", daemon=True).start()
        return future

    def entries(self) -> Tuple[ScriptEntry, ...]:
        return self._snapshot.entries

    def shortcuts(self) -> Dict[str, Path]:
        return dict(self._snapshot.shortcuts)

    def get(self, path: Path) -> Optional[ScriptEntry]:
        return self._snapshot.by_path.get(Path(path))

    def find(self, query: str) -> Optional[ScriptEntry]:
        """
        Look a script up the way a user names it.

        Args:
            query (str): Shortcut key, file name, or file name without extension.

        Returns:
            Optional[ScriptEntry]: First matching entry, or None.
        """
        snapshot = self._snapshot
        if query in snapshot.shortcuts:
            return snapshot.by_path.get(snapshot.shortcuts[query])

        for entry in snapshot.entries:
            if entry.path.name == query:
                return entry
        for entry in snapshot.entries:
            if entry.path.stem == query:
                return entry
        return None
