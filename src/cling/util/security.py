import os
from typing import Dict, Optional, Mapping

class SecurityManager:
    """Builds the environment scripts are executed with."""

    STRIPPED_VARIABLES = ("LD_PRELOAD",)

    @staticmethod
    def execution_env(extra: Optional[Mapping[str, str]] = None) -> Dict[str, str]:
        """
        Return the environment snapshot handed to script subprocesses.

        Args:
            extra (Optional[Mapping[str, str]]): Variables layered on top, e.g. the
                [env] table of Cling.toml.

        Returns:
            Dict[str, str]: Copy of os.environ with sensitive keys removed, plus extras.
        """
        env = os.environ.copy()
        for key in SecurityManager.STRIPPED_VARIABLES:
            env.pop(key, None)
        if extra:
            env.update(extra)
        return env
