# errors.py
"""
Structured runbook errors.

Every error carries enough context (file, line, recipe) for a single clear
diagnostic, and the process exit code the CLI should propagate.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import ClassVar, List, Optional

from .constants import EXIT_CONFIGURATION_ERROR, EXIT_EVALUATION_ERROR


class RunbookError(Exception):
    """Base class for everything the engine raises on purpose."""

    kind: ClassVar[str] = "error"

    @property
    def exit_code(self) -> int:
        return 1

    def location(self) -> Optional[str]:
        path = getattr(self, "path", None)
        line = getattr(self, "line", None)
        if path is None:
            return None
        if line:
            return f"{path}:{line}"
        return str(path)


# ----------------------------------------------------------------------
# Configuration errors: detected before any command runs
# ----------------------------------------------------------------------

@dataclass(eq=False)
class ConfigurationError(RunbookError):
    message: str
    path: Optional[Path] = None
    line: Optional[int] = None
    recipe: Optional[str] = None

    kind: ClassVar[str] = "configuration error"

    @property
    def exit_code(self) -> int:
        return EXIT_CONFIGURATION_ERROR

    def __str__(self) -> str:
        lines = [f"{self.kind}: {self.message}"]
        where = self.location()
        if where:
            lines.append(f"  at {where}")
        if self.recipe:
            lines.append(f"  recipe={self.recipe}")
        return "\n".join(lines)


@dataclass(eq=False)
class RecipeSyntaxError(ConfigurationError):
    column: Optional[int] = None

    kind: ClassVar[str] = "syntax error"

    def location(self) -> Optional[str]:
        where = super().location()
        if where and self.line and self.column:
            return f"{where}:{self.column}"
        return where


@dataclass(eq=False)
class MissingImportError(ConfigurationError):
    kind: ClassVar[str] = "missing import"


@dataclass(eq=False)
class ImportCycleError(ConfigurationError):
    chain: List[Path] = field(default_factory=list)

    kind: ClassVar[str] = "import cycle"


@dataclass(eq=False)
class DuplicateRecipeError(ConfigurationError):
    kind: ClassVar[str] = "duplicate recipe"


@dataclass(eq=False)
class DuplicateVariableError(ConfigurationError):
    kind: ClassVar[str] = "duplicate variable"


@dataclass(eq=False)
class DuplicateSettingError(ConfigurationError):
    kind: ClassVar[str] = "duplicate setting"


@dataclass(eq=False)
class UnknownRecipeError(ConfigurationError):
    kind: ClassVar[str] = "unknown recipe"


@dataclass(eq=False)
class DependencyCycleError(ConfigurationError):
    cycle: List[str] = field(default_factory=list)

    kind: ClassVar[str] = "dependency cycle"


@dataclass(eq=False)
class UnresolvedReferenceError(ConfigurationError):
    kind: ClassVar[str] = "unresolved reference"


@dataclass(eq=False)
class UnknownFunctionError(ConfigurationError):
    kind: ClassVar[str] = "unknown function"


@dataclass(eq=False)
class CircularReferenceError(ConfigurationError):
    cycle: List[str] = field(default_factory=list)

    kind: ClassVar[str] = "circular variable reference"


@dataclass(eq=False)
class ArityError(ConfigurationError):
    kind: ClassVar[str] = "wrong number of arguments"


@dataclass(eq=False)
class MissingArgumentError(ArityError):
    kind: ClassVar[str] = "missing argument"


# ----------------------------------------------------------------------
# Evaluation errors: a value could not be computed
# ----------------------------------------------------------------------

@dataclass(eq=False)
class EvaluationError(RunbookError):
    message: str
    path: Optional[Path] = None
    line: Optional[int] = None

    kind: ClassVar[str] = "evaluation error"

    @property
    def exit_code(self) -> int:
        return EXIT_EVALUATION_ERROR

    def __str__(self) -> str:
        lines = [f"{self.kind}: {self.message}"]
        where = self.location()
        if where:
            lines.append(f"  at {where}")
        return "\n".join(lines)


@dataclass(eq=False)
class ShellEvaluationError(EvaluationError):
    command: str = ""
    status: int = 0
    stderr: str = ""

    kind: ClassVar[str] = "backtick failed"

    def __str__(self) -> str:
        lines = [super().__str__(), f"  command={self.command}", f"  exit={self.status}"]
        if self.stderr:
            lines.append(f"  stderr={self.stderr.strip()[-2000:]}")
        return "\n".join(lines)


# ----------------------------------------------------------------------
# Execution errors: a body line exited non-zero
# ----------------------------------------------------------------------

@dataclass(eq=False)
class CommandFailure(RunbookError):
    recipe: str
    command: str
    status: int

    kind: ClassVar[str] = "command failed"

    @property
    def exit_code(self) -> int:
        # subprocess reports death by signal N as -N
        if self.status < 0:
            return 128 - self.status
        return self.status

    def __str__(self) -> str:
        return f"[{self.recipe}] command failed (exit={self.status}): {self.command}"
