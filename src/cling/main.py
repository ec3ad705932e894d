#!/usr/bin/env python3

import sys
from pathlib import Path

from cling.util.args import args as parse_args
from cling.util.config import Config
from cling.util.errors import ClingError, ConfigError, NotFound
from cling.util.output import Printer, Colors, set_debug
from cling.util.update import update
from cling.util.version import version
from cling.app import ClingApp

log = Printer()

def _find_script(app: ClingApp, query: str) -> Path:
    app.repository.scan()
    entry = app.repository.find(query)
    if entry is not None:
        return entry.path

    candidate = Path(query).expanduser()
    if candidate.exists():
        return candidate
    raise NotFound(f"No script named '{query}' in {app.repository.directory}")

def _list(app: ClingApp) -> int:
    entries = app.repository.scan()
    if not entries:
        log.info(f"No scripts found in {app.repository.directory}")
        return 0

    for entry in entries:
        runner = entry.interpreter.display_name if entry.interpreter else "shebang"
        key = f"[{entry.shortcut.upper()}] " if entry.shortcut else "    "
        print(f"{Colors.BOLD}{key}{Colors.RESET}{entry.name:<30} {Colors.GRAY}{runner}{Colors.RESET}")
    return 0

def _interpreters(app: ClingApp) -> int:
    for interpreter in app.registry.all():
        print(f"{interpreter.id:<10} {interpreter.display_name:<12} .{interpreter.file_extension:<6} {interpreter.executable_path}")
    return 0

def _run(app: ClingApp, script: str, files, detach: bool) -> int:
    path = _find_script(app, script)
    if detach:
        app.run_script(path, files, capture_output=False)
        return 0

    outcome = app.run_script(path, files, wait=True)
    if outcome.stdout:
        sys.stdout.write(outcome.stdout)
    if outcome.stderr:
        sys.stderr.write(outcome.stderr)
    return outcome.returncode

def _edit(app: ClingApp, script: str) -> int:
    return 0 if app.edit_script(_find_script(app, script)) else 1

def _open_folder(app: ClingApp) -> int:
    return 0 if app.open_folder() else 1

def _create(app: ClingApp, name: str, interpreter_id, edit: bool) -> int:
    interpreter = None
    if interpreter_id:
        interpreter = app.registry.get(interpreter_id)
        if interpreter is None:
            raise ConfigError(f"Unknown interpreter '{interpreter_id}'")

    app.creator.create(name, interpreter, edit=edit)
    return 0

def _start(app: ClingApp, no_replace: bool) -> int:
    if not app.boot(prefer_existing=no_replace):
        return 0
    try:
        app.wait()
    finally:
        app.shutdown()
    return 0

def _update(app: ClingApp, current: str) -> int:
    repo = app.config.update_repo
    if not repo:
        raise ConfigError("No 'update_repo' set in Cling.toml")

    # The relaunch restarts the running instance the way it was started, if there is one
    running = app.running_instances()
    update(
        repo,
        current or "unknown",
        on_relaunch=app.before_relaunch,
        relaunch_cmd=running[0] if running else None,
    )
    return 0

def main(argv=None) -> int:
    __version__ = version()
    args = parse_args(__version__, argv)

    if args.debug:
        set_debug()
        log.debug("Debug logging enabled")

    try:
        try:
            config = Config(Path(args.config).expanduser() if args.config else None)
        except ValueError as e:
            raise ConfigError(f"Invalid config: {e}") from e

        app = ClingApp(config)

        match args.command:
            case "list":
                return _list(app)
            case "interpreters":
                return _interpreters(app)
            case "run":
                return _run(app, args.script, args.files, args.detach)
            case "edit":
                return _edit(app, args.script)
            case "open-folder":
                return _open_folder(app)
            case "create":
                return _create(app, args.name, None if args.custom else args.interpreter, not args.no_edit)
            case "start":
                return _start(app, args.no_replace)
            case "update":
                return _update(app, __version__)

    except ClingError as e:
        log.error(str(e))
        return 1
    except Exception as e:
        log.error(f"Unexpected error: {e}")
        if args.debug:
            import traceback
            traceback.print_exc()
        return 1

    return 1

if __name__ == "__main__":
    sys.exit(main())
