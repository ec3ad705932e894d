from argparse import ArgumentParser
from typing import List, Optional

def args(__version__: Optional[str], argv: Optional[List[str]] = None):
    """
    Parse the command line.

    Return:
        argparse.Namespace
    """
    parser = ArgumentParser(prog="cling", description="Run your scripts on files, one keypress away")

    parser.add_argument("-c", "--config", type=str, help="Path to Cling.toml")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    parser.add_argument("--version", action="version", version=__version__ or "unknown", help="Check version of cling")

    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("list", help="List scripts with their interpreter and shortcut")
    commands.add_parser("interpreters", help="List known interpreters")

    run = commands.add_parser("run", help="Run a script on files")
    run.add_argument("script", help="Shortcut key, script name, or path")
    run.add_argument("files", nargs="*", help="Files passed to the script, in order")
    run.add_argument("-d", "--detach", action="store_true", help="Don't wait for the script to finish")

    create = commands.add_parser("create", help="Create a new script")
    create.add_argument("name", help="Script name")
    kind = create.add_mutually_exclusive_group()
    kind.add_argument("-i", "--interpreter", type=str, help="Interpreter id (see 'cling interpreters')")
    kind.add_argument("--custom", action="store_true", help="No catalog interpreter: default shebang, .sh file")
    create.add_argument("--no-edit", action="store_true", help="Don't open the new script in the editor")

    edit = commands.add_parser("edit", help="Open a script in the editor")
    edit.add_argument("script", help="Shortcut key, script name, or path")

    commands.add_parser("open-folder", help="Show the script directory in the file manager")

    start = commands.add_parser("start", help="Run as the single background instance")
    start.add_argument("--no-replace", action="store_true", help="Exit if cling is already running")

    commands.add_parser("update", help="Update cling to the latest version")

    return parser.parse_args(argv)
