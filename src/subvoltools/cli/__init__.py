"""subvoltools CLI: back up directory trees with exclusion patterns."""

from ._helpers import main  # noqa: F401

# Import command modules to register Click commands with the main group.
from . import _backup  # noqa: F401
