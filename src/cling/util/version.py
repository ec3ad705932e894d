from pathlib import Path
from typing import Optional

from cling.util.output import Printer

log = Printer("version")

fp = Path(__file__).resolve().parent.parent / "version.txt"

def version(file_path: Path = fp) -> Optional[str]:
    """
    Read the version shipped next to the package.

    Args:
        file_path (Path): path to version.txt
    Returns:
        Optional[str]: version string, or None if the file is missing
    """
    try:
        return "".join(file_path.read_text(encoding="utf-8").split())
    except FileNotFoundError:
        log.warning(f"Not found {file_path} in install directory, please reinstall cling")
        return None
