import os
import tomllib
from typing import Dict, Any, Optional
from pathlib import Path
from cling.util.output import Printer

log = Printer("config")

CONFIG_NAME = "Cling.toml"
DEFAULT_SHEBANG = "#!/bin/sh"

def _xdg_dir(env_key: str, fallback: str) -> Path:
    value = os.environ.get(env_key)
    return Path(value) if value else Path.home() / fallback

class Config:
    """Configuration manager for cling, handling TOML config loading and retrieval."""

    def __init__(self, path: Optional[Path] = None):
        """
        Initialize the Config manager.

        Args:
            path (Optional[Path]): Explicit config file. When omitted, Cling.toml is
                looked up in the current directory, then in the user config directory.
        """
        self.data: Dict[str, Any] = {}
        self.path: Optional[Path] = None

        search_paths = [path] if path else [
            Path.cwd() / CONFIG_NAME,
            _xdg_dir("XDG_CONFIG_HOME", ".config") / "cling" / CONFIG_NAME,
        ]

        for p in search_paths:
            if p.exists():
                self.path = p
                break

        if self.path:
            try:
                with open(self.path, "rb") as f:
                    self.data = tomllib.load(f)
                log.debug(f"Loaded config: {self.path}")
            except (OSError, tomllib.TOMLDecodeError) as e:
                log.error(f"Failed to parse {self.path}: {e}")

            self.validate()

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Config":
        """Build a validated config from an already parsed mapping."""
        config = cls.__new__(cls)
        config.data = dict(data)
        config.path = None
        config.validate()
        return config

    def validate(self):
        """
        Validate the loaded configuration.

        Raises:
            ValueError: If configuration is invalid.
        """
        if not self.data:
            return

        for key in ("scripts_dir", "pid_file", "editor", "default_shebang", "update_repo"):
            if key in self.data and not isinstance(self.data[key], str):
                raise ValueError(f"'{key}' must be a string")

        shebang = self.data.get("default_shebang")
        if shebang is not None and not shebang.startswith("#!"):
            raise ValueError("'default_shebang' must start with '#!'")

        for section in ("env", "shortcuts", "interpreter"):
            if section in self.data and not isinstance(self.data[section], dict):
                raise ValueError(f"'{section}' section must be a table (dict)")

        for name, key in self.data.get("shortcuts", {}).items():
            if not isinstance(key, str) or len(key) != 1:
                raise ValueError(f"Shortcut for '{name}' must be a single character")

        for name, value in self.data.get("env", {}).items():
            if not isinstance(value, str):
                raise ValueError(f"Environment value for '{name}' must be a string")

        for name, config in self.data.get("interpreter", {}).items():
            if not isinstance(config, dict):
                raise ValueError(f"Interpreter '{name}' config must be a table")

            for required in ("path", "extension"):
                if required not in config:
                    raise ValueError(f"Interpreter '{name}' missing required '{required}'")
                if not isinstance(config[required], str) or not config[required]:
                    raise ValueError(f"Interpreter '{name}' '{required}' must be a non-empty string")

    @property
    def scripts_dir(self) -> Path:
        value = self.data.get("scripts_dir")
        if value:
            return Path(value).expanduser()
        return _xdg_dir("XDG_CONFIG_HOME", ".config") / "cling" / "scripts"

    @property
    def pid_file(self) -> Path:
        value = self.data.get("pid_file")
        if value:
            return Path(value).expanduser()
        return _xdg_dir("XDG_CACHE_HOME", ".cache") / "cling" / "cling.pid"

    @property
    def editor(self) -> Optional[str]:
        return self.data.get("editor")

    @property
    def default_shebang(self) -> str:
        return self.data.get("default_shebang", DEFAULT_SHEBANG)

    @property
    def update_repo(self) -> Optional[str]:
        return self.data.get("update_repo")

    def get_env(self) -> Dict[str, str]:
        """Extra environment variables handed to every script."""
        return dict(self.data.get("env", {}))

    def get_custom_interpreters(self) -> Dict[str, Any]:
        """
        Returns all custom interpreter configurations.

        Returns:
            Dict[str, Any]: Dictionary of interpreter configurations keyed by id.
        """
        return self.data.get("interpreter", {})

    def get_shortcut(self, script_path: Path) -> Optional[str]:
        """
        Get the shortcut key bound to a script.

        Args:
            script_path (Path): Path of the script; bindings are keyed by file name.

        Returns:
            Optional[str]: Single character key, or None if unbound.
        """
        return self.data.get("shortcuts", {}).get(Path(script_path).name)
