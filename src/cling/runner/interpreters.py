from dataclasses import dataclass
from typing import Dict, Any, Iterable, List, Optional, Tuple

from cling.util.errors import ConfigError

SHEBANG_MARKER = "#!"
ENV_LAUNCHER = "/usr/bin/env"

@dataclass(frozen=True)
class Interpreter:
    """An executable able to run script files, and the file conventions that go with it."""
    id: str
    executable_path: str
    file_extension: str
    display_name: str
    content_type: str

    @property
    def shebang(self) -> str:
        return f"{SHEBANG_MARKER}{self.executable_path}"

BUILTIN_INTERPRETERS: Tuple[Interpreter, ...] = (
    Interpreter("sh", "/bin/sh", "sh", "Bash", "text/x-shellscript"),
    Interpreter("zsh", "/bin/zsh", "zsh", "Zsh", "text/x-shellscript"),
    Interpreter("fish", "/usr/local/bin/fish", "fish", "Fish", "text/x-shellscript"),
    Interpreter("python3", "/usr/bin/python3", "py", "Python 3", "text/x-python"),
    Interpreter("ruby", "/usr/bin/ruby", "rb", "Ruby", "text/x-ruby"),
    Interpreter("perl", "/usr/bin/perl", "pl", "Perl", "text/x-perl"),
    Interpreter("swift", "/usr/bin/swift", "swift", "Swift", "text/x-swift"),
    Interpreter("osascript", "/usr/bin/osascript", "scpt", "AppleScript", "application/x-applescript"),
    Interpreter("node", "/usr/local/bin/node", "js", "Node.js", "text/javascript"),
)

def _normalize_extension(ext: str) -> str:
    return ext.lstrip(".").lower()

def parse_shebang(line: str) -> str:
    """
    Extract the interpreter token from a shebang line.

    "#!/usr/bin/env -S node --flag" -> "node", "#!/bin/sh -e" -> "/bin/sh".
    Returns an empty string when the line has no usable token.
    """
    body = line.strip()
    if body.startswith(SHEBANG_MARKER):
        body = body[len(SHEBANG_MARKER):]

    tokens = body.split()
    if tokens and (tokens[0] == ENV_LAUNCHER or tokens[0] == "env"):
        tokens = tokens[1:]
        # env options (-S, -i, NAME=value) precede the program name
        while tokens and (tokens[0].startswith("-") or "=" in tokens[0]):
            tokens = tokens[1:]

    return tokens[0] if tokens else ""

class InterpreterRegistry:
    """
    Static catalog of known interpreters.

    Lookups are pure; an unknown interpreter is a normal outcome and yields None.
    """

    def __init__(self, interpreters: Iterable[Interpreter] = BUILTIN_INTERPRETERS):
        """
        Initialize the registry.

        Args:
            interpreters (Iterable[Interpreter]): Catalog entries in display order.

        Raises:
            ConfigError: If two entries share an id or a file extension.
        """
        self._interpreters: List[Interpreter] = []
        self._by_extension: Dict[str, Interpreter] = {}
        self._by_id: Dict[str, Interpreter] = {}

        for interpreter in interpreters:
            ext = _normalize_extension(interpreter.file_extension)
            if ext in self._by_extension:
                raise ConfigError(
                    f"Interpreters '{self._by_extension[ext].id}' and '{interpreter.id}' "
                    f"both claim extension '.{ext}'"
                )
            if interpreter.id in self._by_id:
                raise ConfigError(f"Duplicate interpreter id '{interpreter.id}'")

            self._interpreters.append(interpreter)
            self._by_extension[ext] = interpreter
            self._by_id[interpreter.id] = interpreter

    @classmethod
    def with_custom(cls, custom: Dict[str, Any]) -> "InterpreterRegistry":
        """
        Build the builtin catalog extended with [interpreter.<id>] tables from Cling.toml.

        Args:
            custom (Dict[str, Any]): Interpreter configurations keyed by id.

        Returns:
            InterpreterRegistry: The combined registry.
        """
        extra = [
            Interpreter(
                id=name,
                executable_path=conf["path"],
                file_extension=_normalize_extension(conf["extension"]),
                display_name=conf.get("name", name),
                content_type=conf.get("content_type", "text/plain"),
            )
            for name, conf in custom.items()
        ]
        return cls(BUILTIN_INTERPRETERS + tuple(extra))

    def all(self) -> Tuple[Interpreter, ...]:
        return tuple(self._interpreters)

    def get(self, interpreter_id: str) -> Optional[Interpreter]:
        return self._by_id.get(interpreter_id)

    def resolve_by_extension(self, ext: str) -> Optional[Interpreter]:
        """Find the interpreter owning a file extension ("py" or ".py")."""
        return self._by_extension.get(_normalize_extension(ext))

    def resolve_by_shebang(self, line: str) -> Optional[Interpreter]:
        """
        Find the interpreter named by a shebang line.

        An exact match on the executable path wins; otherwise the first entry whose
        path contains the token is used, so "#!/usr/bin/env node" finds the
        "/usr/local/bin/node" entry.

        Args:
            line (str): First line of a script.

        Returns:
            Optional[Interpreter]: The matching interpreter, or None.
        """
        token = parse_shebang(line)
        if not token:
            return None

        for interpreter in self._interpreters:
            if interpreter.executable_path == token:
                return interpreter

        for interpreter in self._interpreters:
            if token in interpreter.executable_path:
                return interpreter

        return None
