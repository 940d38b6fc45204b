"""Command groups for the vidtag CLI.

This package provides sub-apps that are mounted by vidtag.cli.
"""

from . import audit as audit  # noqa: F401
from . import caps as caps  # noqa: F401
from . import config as config  # noqa: F401
from . import diag as diag  # noqa: F401
from . import preset as preset  # noqa: F401
from . import tag as tag  # noqa: F401

__all__ = [
    "tag",
    "caps",
    "preset",
    "config",
    "diag",
    "audit",
]
