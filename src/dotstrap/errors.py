"""Exception types shared by the dotstrap workflows."""


class DotstrapError(Exception):
    """Base class for every error dotstrap raises on purpose."""

    exit_code = 1


class ConfigError(DotstrapError):
    """Invalid settings, identifiers or config files."""


class AbortError(DotstrapError):
    """The run has to stop, usually after the user declined."""


class NonInteractiveError(AbortError):
    """A required confirmation was needed but nobody can answer it."""

    def __init__(self, question: str):
        self.question = question
        super().__init__(
            "Non-interactive mode requires DOTFILES_FORCE=1 to proceed "
            f"(prompt was: {question})"
        )


class DownloadError(DotstrapError):
    """Fetching or unpacking the dotfiles source failed."""


class SyncError(DotstrapError):
    """rsync or the surrounding file handling failed."""


class PackageError(DotstrapError):
    """A package manager step could not run at all."""
