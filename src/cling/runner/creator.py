import os
import shlex
import shutil
import subprocess as spc
import sys
from pathlib import Path
from typing import List, Optional

from cling.util.output import Printer, Colors
from cling.util.errors import IOFailure, InvalidScriptName
from cling.util.validator import Validator
from cling.util.config import DEFAULT_SHEBANG
from cling.runner.interpreters import Interpreter
from cling.runner.repository import ScriptRepository

log = Printer("runner.creator")

DEFAULT_EXTENSION = "sh"
SCRIPT_MODE = 0o755

class EditorLauncher:
    """Opens a file in the user's editor, detached from cling."""

    def __init__(self, editor: Optional[str] = None):
        """
        Initialize the EditorLauncher.

        Args:
            editor (Optional[str]): Editor command line from Cling.toml. Falls back to
                $VISUAL, $EDITOR, then the desktop opener.
        """
        self.editor = editor

    @staticmethod
    def opener_for(path: Path) -> Optional[List[str]]:
        """Desktop opener command (open/xdg-open) for a file or folder, if one is installed."""
        opener = "open" if sys.platform == "darwin" else "xdg-open"
        if shutil.which(opener):
            return [opener, str(path)]
        return None

    def command_for(self, path: Path) -> Optional[List[str]]:
        editor = self.editor or os.environ.get("VISUAL") or os.environ.get("EDITOR")
        if editor:
            return shlex.split(editor) + [str(path)]
        return self.opener_for(path)

    def _launch(self, cmd: List[str], tag: str) -> bool:
        try:
            spc.Popen(cmd, stdin=spc.DEVNULL, start_new_session=os.name == "posix")
        except OSError as e:
            log.warning(f"Failed to start '{cmd[0]}': {e}")
            return False

        log.action(tag, " ".join(cmd), Colors.CYAN)
        return True

    def open(self, path: Path) -> bool:
        """
        Open a file for editing. Failures are logged, never raised.

        Returns:
            bool: True if an editor process was started.
        """
        cmd = self.command_for(path)
        if not cmd:
            log.warning(f"No editor configured, open {path} manually")
            return False
        return self._launch(cmd, "EDIT")

    def reveal(self, directory: Path) -> bool:
        """
        Show a folder in the desktop file manager. Failures are logged, never raised.

        Returns:
            bool: True if the file manager was started.
        """
        cmd = self.opener_for(directory)
        if not cmd:
            log.warning(f"No file manager opener found, scripts live in {directory}")
            return False
        return self._launch(cmd, "OPEN")

class ScriptCreator:
    """Creates new scripts in the managed directory."""

    def __init__(
        self,
        repository: ScriptRepository,
        editor: Optional[EditorLauncher] = None,
        default_shebang: str = DEFAULT_SHEBANG,
    ):
        self.repository = repository
        self.editor = editor or EditorLauncher()
        self.default_shebang = default_shebang

    @property
    def directory(self) -> Path:
        return self.repository.directory

    def target_path(self, name: str, interpreter: Optional[Interpreter] = None) -> Path:
        """
        Compose the path a new script will be written to.

        Raises:
            InvalidScriptName: If the name is empty.
            IOFailure: If the sanitized name would land outside the script directory.
        """
        if not name or not name.strip():
            raise InvalidScriptName("Script name must not be empty")

        ext = interpreter.file_extension if interpreter else DEFAULT_EXTENSION
        filename = Validator.safe_filename(name)
        if not filename.lower().endswith(f".{ext.lower()}"):
            filename = f"{filename}.{ext}"

        target = self.directory / filename
        if target.resolve().parent != self.directory.resolve():
            raise IOFailure(f"Refusing to create {filename} outside {self.directory}")
        return target

    def create(self, name: str, interpreter: Optional[Interpreter] = None, edit: bool = True) -> Path:
        """
        Write a new executable script holding just a shebang line.

        An existing file with the same name is overwritten: creation is always an
        explicit user action.

        Args:
            name (str): Display name, sanitized into the file name.
            interpreter (Optional[Interpreter]): Interpreter for the shebang and extension.
                None writes the default shebang with a .sh extension.
            edit (bool): Open the new script in the editor.

        Returns:
            Path: The created script.

        Raises:
            InvalidScriptName: If the name is empty.
            IOFailure: If the file can't be written or made executable, or would land
                outside the script directory.
        """
        try:
            target = self.target_path(name, interpreter)
        except IOFailure as e:
            log.error(str(e))
            self.repository.refresh()
            raise
        shebang = interpreter.shebang if interpreter else self.default_shebang

        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            if target.exists():
                log.warning(f"Overwriting existing script {target.name}")
            target.write_text(f"{shebang}\n", encoding="utf-8")
            os.chmod(target, SCRIPT_MODE)
        except OSError as e:
            log.error(f"Failed to create script {target}: {e}")
            # The listing should still reflect whatever made it to disk
            self.repository.refresh()
            raise IOFailure(f"Failed to create script {target}: {e}") from e

        log.action("CREATE", str(target))
        if edit:
            self.editor.open(target)
        self.repository.refresh()
        return target
