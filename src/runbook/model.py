# model.py
from __future__ import annotations

import enum
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

from .constants import (
    ATTR_NO_CD,
    ATTR_NO_EXIT_ON_ERROR,
    ATTR_PRIVATE,
    ATTR_RERUN,
    ATTR_SILENT,
    ATTR_WORKING_DIRECTORY,
)
from .errors import CommandFailure


# ----------------------------------------------------------------------
# Expressions
# ----------------------------------------------------------------------

@dataclass(frozen=True)
class StringLiteral:
    value: str


@dataclass(frozen=True)
class Backtick:
    """Shell-backed value: the command's trimmed stdout."""
    command: str


@dataclass(frozen=True)
class VariableRef:
    name: str


@dataclass(frozen=True)
class Concatenation:
    lhs: "Expression"
    rhs: "Expression"


@dataclass(frozen=True)
class Join:
    """`a / b` joins two values with a single slash."""
    lhs: "Expression"
    rhs: "Expression"


@dataclass(frozen=True)
class Call:
    name: str
    arguments: Tuple["Expression", ...] = ()


Expression = Union[StringLiteral, Backtick, VariableRef, Concatenation, Join, Call]


def references(expression: Expression) -> List[str]:
    """Names referenced by an expression, left to right."""
    if isinstance(expression, VariableRef):
        return [expression.name]
    if isinstance(expression, (Concatenation, Join)):
        return references(expression.lhs) + references(expression.rhs)
    if isinstance(expression, Call):
        names: List[str] = []
        for arg in expression.arguments:
            names.extend(references(arg))
        return names
    return []


def calls(expression: Expression) -> List[Call]:
    if isinstance(expression, Call):
        found = [expression]
        for arg in expression.arguments:
            found.extend(calls(arg))
        return found
    if isinstance(expression, (Concatenation, Join)):
        return calls(expression.lhs) + calls(expression.rhs)
    return []


# ----------------------------------------------------------------------
# Recipe bodies
# ----------------------------------------------------------------------

@dataclass(frozen=True)
class Text:
    value: str


@dataclass(frozen=True)
class Interpolation:
    expression: Expression


Fragment = Union[Text, Interpolation]


@dataclass(frozen=True)
class Line:
    """One body line: opaque text with `{{ }}` interpolations."""
    fragments: Tuple[Fragment, ...]
    flip_echo: bool = False      # `@` prefix
    tolerate_error: bool = False  # `-` prefix
    number: int = field(default=0, compare=False)

    def expressions(self) -> List[Expression]:
        return [f.expression for f in self.fragments if isinstance(f, Interpolation)]


# ----------------------------------------------------------------------
# Declarations
# ----------------------------------------------------------------------

class ParameterKind(enum.Enum):
    SINGULAR = ""
    STAR = "*"   # zero or more
    PLUS = "+"   # one or more


@dataclass(frozen=True)
class Parameter:
    name: str
    default: Optional[Expression] = None
    kind: ParameterKind = ParameterKind.SINGULAR
    export: bool = False

    @property
    def variadic(self) -> bool:
        return self.kind is not ParameterKind.SINGULAR

    @property
    def required(self) -> bool:
        if self.default is not None:
            return False
        return self.kind is not ParameterKind.STAR


@dataclass(frozen=True)
class Dependency:
    """Edge to a prerequisite recipe, with argument expressions."""
    recipe: str
    arguments: Tuple[Expression, ...] = ()
    line: int = field(default=0, compare=False)


@dataclass(frozen=True)
class Attribute:
    name: str
    value: Optional[str] = None


@dataclass(frozen=True)
class Recipe:
    name: str
    parameters: Tuple[Parameter, ...] = ()
    dependencies: Tuple[Dependency, ...] = ()
    body: Tuple[Line, ...] = ()
    quiet: bool = False           # `@name:` header
    attributes: Tuple[Attribute, ...] = ()
    doc: Optional[str] = None
    path: Optional[Path] = field(default=None, compare=False)
    line: int = field(default=0, compare=False)

    def attribute(self, name: str) -> Optional[Attribute]:
        for attr in self.attributes:
            if attr.name == name:
                return attr
        return None

    @property
    def private(self) -> bool:
        return self.name.startswith("_") or self.attribute(ATTR_PRIVATE) is not None

    @property
    def silent(self) -> bool:
        return self.quiet or self.attribute(ATTR_SILENT) is not None

    @property
    def no_cd(self) -> bool:
        return self.attribute(ATTR_NO_CD) is not None

    @property
    def tolerate_errors(self) -> bool:
        return self.attribute(ATTR_NO_EXIT_ON_ERROR) is not None

    @property
    def rerun(self) -> bool:
        return self.attribute(ATTR_RERUN) is not None

    @property
    def working_directory(self) -> Optional[str]:
        attr = self.attribute(ATTR_WORKING_DIRECTORY)
        return attr.value if attr else None

    def min_arguments(self) -> int:
        return sum(1 for p in self.parameters if p.required)

    def max_arguments(self) -> Optional[int]:
        """None when a variadic parameter absorbs any number of values."""
        if any(p.variadic for p in self.parameters):
            return None
        return len(self.parameters)


@dataclass(frozen=True)
class Variable:
    """A `name := expression` definition (resolution state lives in the evaluator)."""
    name: str
    expression: Expression
    export: bool = False
    path: Optional[Path] = field(default=None, compare=False)
    line: int = field(default=0, compare=False)


@dataclass(frozen=True)
class Import:
    path: str
    optional: bool = False
    line: int = field(default=0, compare=False)


@dataclass(frozen=True)
class Setting:
    name: str
    value: Union[bool, str, Tuple[str, ...]]
    path: Optional[Path] = field(default=None, compare=False)
    line: int = field(default=0, compare=False)


@dataclass(frozen=True)
class Alias:
    name: str
    target: str
    path: Optional[Path] = field(default=None, compare=False)
    line: int = field(default=0, compare=False)


@dataclass(frozen=True)
class Document:
    """One parsed file. Dicts keep declaration order."""
    imports: Tuple[Import, ...] = ()
    variables: Dict[str, Variable] = field(default_factory=dict)
    recipes: Dict[str, Recipe] = field(default_factory=dict)
    aliases: Dict[str, Alias] = field(default_factory=dict)
    settings: Dict[str, Setting] = field(default_factory=dict)
    path: Optional[Path] = field(default=None, compare=False)

    @property
    def first_recipe(self) -> Optional[str]:
        return next(iter(self.recipes), None)


# ----------------------------------------------------------------------
# Merged namespace and run plan
# ----------------------------------------------------------------------

@dataclass
class Namespace:
    """Every document reachable from the root, merged into one flat namespace."""
    root: Path
    recipes: Dict[str, Recipe] = field(default_factory=dict)
    variables: Dict[str, Variable] = field(default_factory=dict)
    aliases: Dict[str, Alias] = field(default_factory=dict)
    settings: Dict[str, Setting] = field(default_factory=dict)
    default_recipe: Optional[str] = None

    @property
    def directory(self) -> Path:
        return self.root.parent

    def setting(self, name: str, default=None):
        found = self.settings.get(name)
        return default if found is None else found.value

    def lookup(self, name: str) -> Optional[Recipe]:
        """Recipe by name or alias."""
        if name in self.recipes:
            return self.recipes[name]
        alias = self.aliases.get(name)
        if alias is not None:
            return self.recipes.get(alias.target)
        return None


@dataclass(frozen=True)
class PlannedRecipe:
    """One run-plan entry: a recipe plus the values bound to its parameters."""
    recipe: Recipe
    arguments: Tuple[str, ...]
    scope: Dict[str, str] = field(default_factory=dict)

    @property
    def key(self) -> Tuple[str, Tuple[str, ...]]:
        return self.recipe.name, self.arguments


@dataclass
class RunPlan:
    target: str
    entries: List[PlannedRecipe] = field(default_factory=list)

    def names(self) -> List[str]:
        return [e.recipe.name for e in self.entries]


class RunState(enum.Enum):
    PLANNING = "planning"
    INTERPOLATING = "interpolating"
    INVOKING = "invoking"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class ToleratedFailure:
    recipe: str
    command: str
    status: int


@dataclass
class RunResult:
    state: RunState
    exit_code: int
    executed: List[str] = field(default_factory=list)      # commands handed to the shell
    tolerated: List[ToleratedFailure] = field(default_factory=list)
    failure: Optional[CommandFailure] = None
