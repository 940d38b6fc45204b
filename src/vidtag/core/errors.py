# src/vidtag/core/errors.py


class VidtagError(Exception):
    """Base application error for vidtag.

    Use this for predictable, user-facing error messages that should be
    caught by the CLI and displayed nicely. Failures inside the write
    pipeline are not raised; they end up as statuses in the file report.
    """

    pass


class BackupError(VidtagError):
    """A backup could not be located or restored."""


class PresetError(VidtagError):
    """A named preset does not exist or cannot be used."""
