from pathlib import Path
from typing import Dict, Optional, Protocol

from cling.util.output import Printer

log = Printer("index")

class SearchIndex(Protocol):
    """The file search index cling drives. Searching itself lives outside cling."""

    def start(self) -> None: ...

    def refresh(self, full_reindex: bool = False) -> None: ...

    def cleanup(self) -> None: ...

    def publish_scripts(self, scripts: Dict[Path, Optional[str]]) -> None: ...

class NullSearchIndex:
    """Index stand-in used when no search backend is attached; it only keeps the script registry."""

    def __init__(self):
        self.scripts: Dict[Path, Optional[str]] = {}
        self.running = False

    def start(self):
        self.running = True
        log.debug("Search index started")

    def refresh(self, full_reindex: bool = False):
        log.debug(f"Search index refresh (full={full_reindex})")

    def cleanup(self):
        # Safe to repeat
        self.running = False

    def publish_scripts(self, scripts: Dict[Path, Optional[str]]):
        self.scripts = dict(scripts)

    @property
    def script_shortcuts(self) -> Dict[Path, str]:
        return {path: key for path, key in self.scripts.items() if key}
