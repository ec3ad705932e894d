class ClingError(Exception):
    """Base class for all cling exceptions."""
    pass

class ConfigError(ClingError):
    """Configuration related errors."""
    pass

class NotFound(ClingError):
    """Script path does not exist."""
    pass

class NotExecutable(ClingError):
    """Script has no execute permission and no interpreter to run it with."""
    pass

class SpawnFailed(ClingError):
    """The OS refused to start the subprocess."""

    def __init__(self, reason: str):
        super().__init__(f"Failed to spawn script: {reason}")
        self.reason = reason

class IOFailure(ClingError):
    """Filesystem failure while creating a script or writing the pid marker."""
    pass

class InvalidScriptName(ClingError, ValueError):
    """Script name is empty."""
    pass
