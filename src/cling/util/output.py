import logging
import sys
from typing import Optional

ROOT_LOGGER = "cling"

class Colors:
    """ANSI color codes for terminal output."""
    GREEN = '\033[92m'
    CYAN = '\033[96m'
    YELLOW = '\033[93m'
    RED = '\033[91m'
    GRAY = '\033[1;30m'
    RESET = '\033[0m'
    BOLD = '\033[1m'

class TaggedFormatter(logging.Formatter):
    """
    Formats records as "[ TAG ] message".

    Records may carry extra={'tag': ..., 'color': ..., 'script': ..., 'pid': ...}.
    A script name prefixes the message, a child pid is appended. With
    show_origin the emitting process and component are shown as well, which
    is what --debug turns on.
    """

    LEVEL_TAGS = {
        logging.DEBUG: ("DEBUG", Colors.GRAY),
        logging.INFO: ("INFO", Colors.CYAN),
        logging.WARNING: ("WARN", Colors.YELLOW),
        logging.ERROR: ("ERROR", Colors.RED),
        logging.CRITICAL: ("CRIT", Colors.RED),
    }

    def __init__(self, show_origin: bool = False):
        super().__init__()
        self.show_origin = show_origin

    @staticmethod
    def component(record: logging.LogRecord) -> str:
        _, _, child = record.name.partition(".")
        return child or "main"

    def format(self, record):
        tag, color = self.LEVEL_TAGS.get(record.levelno, ("LOG", Colors.RESET))
        tag = getattr(record, "tag", tag)
        color = getattr(record, "color", color)

        message = super().format(record)
        script = getattr(record, "script", None)
        if script:
            message = f"{Colors.BOLD}{script}{Colors.RESET}: {message}"
        pid = getattr(record, "pid", None)
        if pid is not None:
            message = f"{message} {Colors.GRAY}(pid {pid}){Colors.RESET}"

        origin = ""
        if self.show_origin:
            origin = f"{Colors.GRAY}{record.process} {self.component(record)}{Colors.RESET} "
        return f"{Colors.BOLD}{color}[ {tag} ]{Colors.RESET} {origin}{message}"

_root = logging.getLogger(ROOT_LOGGER)
_root.setLevel(logging.INFO)
_handler = logging.StreamHandler(sys.stdout)
_handler.setFormatter(TaggedFormatter())
_root.addHandler(_handler)

def set_debug(enabled: bool = True):
    """Switch every cling logger to DEBUG and show where each line comes from."""
    _root.setLevel(logging.DEBUG if enabled else logging.INFO)
    _handler.setFormatter(TaggedFormatter(show_origin=enabled))

class Printer:
    """
    Logging facade for one cling component.

    Each module keeps its own Printer, e.g. Printer("runner.executor"), which
    logs through the child logger "cling.runner.executor" and so shares the
    root handler and level.
    """

    def __init__(self, component: Optional[str] = None):
        self.logger = logging.getLogger(f"{ROOT_LOGGER}.{component}" if component else ROOT_LOGGER)

    @staticmethod
    def _extra(script=None, pid=None, **fields):
        extra = dict(fields)
        if script is not None:
            extra["script"] = str(script)
        if pid is not None:
            extra["pid"] = pid
        return extra

    def action(self, tag: str, message: str, color: str = Colors.GREEN, script=None, pid=None):
        """Log an action under its own tag instead of the level name."""
        self.logger.info(message, extra=self._extra(script, pid, tag=tag, color=color))

    def error(self, message: str, script=None, pid=None):
        self.logger.error(message, extra=self._extra(script, pid))

    def info(self, message: str, script=None, pid=None):
        self.logger.info(message, extra=self._extra(script, pid))

    def warning(self, message: str, script=None, pid=None):
        self.logger.warning(message, extra=self._extra(script, pid))

    def debug(self, message: str, script=None, pid=None):
        self.logger.debug(message, extra=self._extra(script, pid))
