import os
import shutil
import sys
import tempfile
import zipfile
import subprocess
from pathlib import Path
from typing import Callable, List, Optional

import requests

from cling.util.output import Printer, Colors

log = Printer("update")

VERSION_URL = "https://raw.githubusercontent.com/{repo}/{branch}/src/cling/version.txt"
ARCHIVE_URL = "https://github.com/{repo}/archive/refs/tags/{version}.zip"
PARENT_EXIT_TIMEOUT = 60

# Detached installer, started right before cling exits
HELPER_TEMPLATE = """
import os
import shutil
import subprocess
import time

LOG = {log_file!r}

def log(line):
    with open(LOG, "a", encoding="utf-8") as f:
        f.write(line + "\\n")

def parent_alive(pid):
    try:
        os.kill(pid, 0)
    except OSError:
        return False
    return True

def main():
    pid = {parent_pid}
    deadline = time.monotonic() + {timeout}
    while parent_alive(pid) and time.monotonic() < deadline:
        time.sleep(0.2)

    install = {install_cmd!r}
    log("installing: " + " ".join(install))
    try:
        result = subprocess.run(install, capture_output=True, text=True)
        log(result.stdout + result.stderr)
    finally:
        shutil.rmtree({work_dir!r}, ignore_errors=True)

    if result.returncode != 0:
        log("install failed with code %d, not relaunching" % result.returncode)
        return

    relaunch = {relaunch!r}
    if relaunch:
        log("relaunching: " + " ".join(relaunch))
        subprocess.Popen(relaunch, start_new_session=(os.name != "nt"))

if __name__ == "__main__":
    main()
"""

def fetch_latest_version(repo: str, branch: str = "main") -> str:
    """Version string published in the repository's packaged version.txt."""
    response = requests.get(VERSION_URL.format(repo=repo, branch=branch), timeout=5)
    response.raise_for_status()
    return response.text.strip()

def download_archive(url: str, dest_path: Path) -> Path:
    with requests.get(url, stream=True, timeout=60) as response:
        response.raise_for_status()
        with open(dest_path, "wb") as f:
            for chunk in response.iter_content(chunk_size=64 * 1024):
                f.write(chunk)
    log.debug(f"Downloaded {dest_path.stat().st_size} bytes from {url}")
    return dest_path

def check_archive(archive: Path):
    """
    Make sure the download is an installable source tree before cling exits for it.

    Raises:
        zipfile.BadZipFile: If the archive is corrupt or has no pyproject.toml at its top.
    """
    with zipfile.ZipFile(archive) as zf:
        broken = zf.testzip()
        if broken is not None:
            raise zipfile.BadZipFile(f"Corrupt member {broken}")
        names = zf.namelist()
    if not any(name.count("/") <= 1 and name.endswith("pyproject.toml") for name in names):
        raise zipfile.BadZipFile("Archive has no pyproject.toml, not a cling release")

def installer_command(archive: Path, python: str = sys.executable) -> List[str]:
    """pip invocation that upgrades the cling distribution of this interpreter in place."""
    return [python, "-m", "pip", "install", "--upgrade", "--disable-pip-version-check", str(archive)]

def _discard(work_dir: Optional[Path]):
    if work_dir is not None:
        shutil.rmtree(work_dir, ignore_errors=True)

def update(
    repo: str,
    current_version: str,
    on_relaunch: Optional[Callable[[], None]] = None,
    relaunch_cmd: Optional[List[str]] = None,
    confirm: Callable[[str], str] = input,
) -> bool:
    """
    Install the latest tagged release into the running interpreter, then relaunch.

    pip runs from a detached helper once this process has exited. on_relaunch
    runs right before the exit, so the live instance gets cleaned up exactly once.

    Args:
        repo (str): "owner/name" of the GitHub repository.
        current_version (str): Installed version.
        on_relaunch (Optional[Callable[[], None]]): Cleanup hook run before exiting.
        relaunch_cmd (Optional[List[str]]): Command the helper starts after a successful install.
        confirm (Callable[[str], str]): Prompt function, "y" proceeds.

    Returns:
        bool: False if nothing was installed. On success the process exits instead.
    """
    work_dir = None
    try:
        log.action("CHECK", f"Checking for updates (current: {current_version})", Colors.CYAN)
        latest = fetch_latest_version(repo)
        if latest == current_version:
            log.action("UPDATE", "Already on the latest version")
            return False

        log.warning(f"New version available: {latest}")
        if confirm("Update?[y/N]: ") not in ("y", "Y"):
            return False

        work_dir = Path(tempfile.mkdtemp(prefix="cling_update_"))
        log.action("DOWNLOAD", latest, Colors.YELLOW)
        archive = download_archive(ARCHIVE_URL.format(repo=repo, version=latest), work_dir / f"cling-{latest}.zip")
        check_archive(archive)

        log_file = Path(tempfile.gettempdir()) / "cling_update.log"
        helper = work_dir / "install.py"
        helper.write_text(HELPER_TEMPLATE.format(
            log_file=str(log_file),
            parent_pid=os.getpid(),
            timeout=PARENT_EXIT_TIMEOUT,
            install_cmd=installer_command(archive),
            work_dir=str(work_dir),
            relaunch=list(relaunch_cmd or []),
        ), encoding="utf-8")

        if sys.platform == "win32":
            subprocess.Popen([sys.executable, str(helper)], creationflags=subprocess.CREATE_NEW_CONSOLE)
        else:
            subprocess.Popen([sys.executable, str(helper)], start_new_session=True)
        log.action("INSTALL", f"Installing {latest} in the background, see {log_file}", Colors.CYAN)

    except requests.RequestException as e:
        log.error(f"Network error: {e}")
        _discard(work_dir)
        return False
    except (OSError, zipfile.BadZipFile) as e:
        log.error(f"Failed to update: {e}")
        _discard(work_dir)
        return False

    if on_relaunch is not None:
        on_relaunch()
    sys.exit(0)
