# constants.py
from __future__ import annotations

# Recipe files looked up (in this order) when --file is not given.
DEFAULT_FILENAMES: tuple[str, ...] = (
    "runbook",
    "Runbook",
    ".runbook",
    "justfile",
    "Justfile",
    ".justfile",
)

DEFAULT_SHELL: tuple[str, ...] = ("sh", "-cu")

EXIT_OK = 0
EXIT_CONFIGURATION_ERROR = 65
EXIT_EVALUATION_ERROR = 66
EXIT_INTERRUPTED = 130

# ---------------------------------------------------------------------
# Recipe attributes and settings understood by the parser
# ---------------------------------------------------------------------

ATTR_PRIVATE = "private"
ATTR_NO_CD = "no-cd"
ATTR_SILENT = "silent"
ATTR_NO_EXIT_ON_ERROR = "no-exit-on-error"
ATTR_RERUN = "rerun"
ATTR_WORKING_DIRECTORY = "working-directory"

FLAG_ATTRIBUTES: frozenset[str] = frozenset(
    {ATTR_PRIVATE, ATTR_NO_CD, ATTR_SILENT, ATTR_NO_EXIT_ON_ERROR, ATTR_RERUN}
)
VALUE_ATTRIBUTES: frozenset[str] = frozenset({ATTR_WORKING_DIRECTORY})

SETTING_SHELL = "shell"
SETTING_EXPORT = "export"
SETTING_QUIET = "quiet"
SETTING_POSITIONAL_ARGUMENTS = "positional-arguments"
SETTING_WORKING_DIRECTORY = "working-directory"

# setting name -> python type of its value
SETTING_TYPES: dict[str, type] = {
    SETTING_SHELL: tuple,
    SETTING_EXPORT: bool,
    SETTING_QUIET: bool,
    SETTING_POSITIONAL_ARGUMENTS: bool,
    SETTING_WORKING_DIRECTORY: str,
}
