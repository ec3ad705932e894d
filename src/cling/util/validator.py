import re

class Validator:
    """
    Utility class for input validation and sanitization.
    """

    # Path separators, characters Windows and macOS refuse in file names, and control characters
    UNSAFE_CHARS = re.compile(r'[/\\:*?"<>|\x00-\x1f\x7f]')
    MAX_NAME_LENGTH = 200
    FALLBACK_NAME = "script"

    @staticmethod
    def safe_filename(name: str) -> str:
        """
        Turn a user supplied script name into a single path component.

        The result never contains a separator, is never empty and is never "." or "..",
        so joining it onto a directory can't escape that directory.

        Args:
            name (str): Raw name typed by the user.

        Returns:
            str: Sanitized file name (without extension).
        """
        cleaned = Validator.UNSAFE_CHARS.sub("_", name).strip()
        # Leading dots would hide the file or spell a parent reference
        cleaned = cleaned.lstrip(".").strip()
        cleaned = cleaned[:Validator.MAX_NAME_LENGTH].rstrip()
        return cleaned or Validator.FALLBACK_NAME
