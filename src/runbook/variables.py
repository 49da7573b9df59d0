# variables.py
"""
Lazy, memoized variable evaluation.

Every variable has an entry with a resolution state:

    UNRESOLVED -> RESOLVING -> RESOLVED
                           `-> FAILED

A variable is evaluated on first reference only, at most once per Evaluator.
Re-entering an entry that is still RESOLVING means the variable refers to
itself through other variables: CircularReferenceError, naming the cycle. A
FAILED entry re-raises its stored error instead of evaluating again, so a
backtick's command runs at most once per invocation.
"""
from __future__ import annotations

import enum
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Mapping, Optional, Tuple

from .constants import DEFAULT_SHELL, SETTING_EXPORT, SETTING_SHELL
from .errors import (
    CircularReferenceError,
    ConfigurationError,
    EvaluationError,
    RunbookError,
    UnknownFunctionError,
    UnknownRecipeError,
    UnresolvedReferenceError,
)
from .formatter import format_line
from .functions import FUNCTIONS, FunctionContext
from .model import (
    Backtick,
    Call,
    Concatenation,
    Expression,
    Join,
    Namespace,
    StringLiteral,
    Variable,
    VariableRef,
    calls,
    references,
)
from .shell import Shell

logger = logging.getLogger(__name__)


class State(enum.Enum):
    UNRESOLVED = "unresolved"
    RESOLVING = "resolving"
    RESOLVED = "resolved"
    FAILED = "failed"


@dataclass
class Entry:
    variable: Optional[Variable]
    state: State = State.UNRESOLVED
    value: Optional[str] = None
    error: Optional[RunbookError] = None


class Evaluator:
    def __init__(
        self,
        namespace: Namespace,
        *,
        shell: Optional[Shell] = None,
        overrides: Optional[Mapping[str, str]] = None,
        invocation_directory: Optional[Path] = None,
    ):
        self.namespace = namespace
        self.shell = shell or Shell(tuple(namespace.setting(SETTING_SHELL, DEFAULT_SHELL)))
        self.invocation_directory = invocation_directory or Path.cwd()
        self.directory = namespace.directory

        self._entries: Dict[str, Entry] = {
            name: Entry(variable) for name, variable in namespace.variables.items()
        }
        for name, value in (overrides or {}).items():
            if name not in self._entries:
                raise ConfigurationError(f"cannot override unknown variable '{name}'")
            entry = self._entries[name]
            entry.state = State.RESOLVED
            entry.value = value

    def state(self, name: str) -> State:
        return self._entries[name].state

    def variable(self, name: str, resolving: Tuple[str, ...] = ()) -> str:
        """Value of a namespace variable, evaluating it on first use."""
        entry = self._entries.get(name)
        if entry is None:
            raise UnresolvedReferenceError(f"variable '{name}' is not defined")

        if entry.state is State.RESOLVED:
            return entry.value or ""
        if entry.state is State.FAILED:
            assert entry.error is not None
            raise entry.error
        if entry.state is State.RESOLVING:
            start = resolving.index(name) if name in resolving else 0
            cycle = list(resolving[start:]) + [name]
            var = entry.variable
            raise CircularReferenceError(
                "circular variable reference: " + " -> ".join(cycle),
                path=var.path if var else None,
                line=var.line if var else None,
                cycle=cycle,
            )

        var = entry.variable
        assert var is not None
        entry.state = State.RESOLVING
        try:
            value = self.evaluate(
                var.expression,
                path=var.path,
                line=var.line,
                resolving=resolving + (name,),
            )
        except RunbookError as e:
            entry.state = State.FAILED
            entry.error = e
            raise

        entry.state = State.RESOLVED
        entry.value = value
        logger.debug("resolved %s", name)
        return value

    def evaluate(
        self,
        expr: Expression,
        scope: Optional[Mapping[str, str]] = None,
        *,
        path: Optional[Path] = None,
        line: Optional[int] = None,
        resolving: Tuple[str, ...] = (),
    ) -> str:
        """Evaluate an expression; `scope` holds bound recipe parameters."""
        if isinstance(expr, StringLiteral):
            return expr.value

        if isinstance(expr, VariableRef):
            if scope is not None and expr.name in scope:
                return scope[expr.name]
            if expr.name not in self._entries:
                raise UnresolvedReferenceError(
                    f"variable '{expr.name}' is not defined", path=path, line=line
                )
            return self.variable(expr.name, resolving)

        if isinstance(expr, Concatenation):
            lhs = self.evaluate(expr.lhs, scope, path=path, line=line, resolving=resolving)
            return lhs + self.evaluate(expr.rhs, scope, path=path, line=line, resolving=resolving)

        if isinstance(expr, Join):
            lhs = self.evaluate(expr.lhs, scope, path=path, line=line, resolving=resolving)
            rhs = self.evaluate(expr.rhs, scope, path=path, line=line, resolving=resolving)
            return lhs.rstrip("/") + "/" + rhs.lstrip("/")

        if isinstance(expr, Backtick):
            try:
                return self.shell.capture(expr.command, cwd=self.directory, env=dict(os.environ))
            except EvaluationError as e:
                _locate(e, path, line)
                raise

        if isinstance(expr, Call):
            function = FUNCTIONS.get(expr.name)
            if function is None or not function.accepts(len(expr.arguments)):
                raise UnknownFunctionError(
                    f"no function '{expr.name}' taking {len(expr.arguments)} argument(s)",
                    path=path,
                    line=line,
                )
            args = [
                self.evaluate(a, scope, path=path, line=line, resolving=resolving)
                for a in expr.arguments
            ]
            ctx = FunctionContext(self.invocation_directory, path)
            try:
                return function.impl(ctx, *args)
            except EvaluationError as e:
                _locate(e, path, line)
                raise

        raise TypeError(f"not an expression: {expr!r}")

    def variables(self) -> Dict[str, str]:
        """Evaluate every variable (declaration order)."""
        return {name: self.variable(name) for name in self._entries}

    def exports(self) -> Dict[str, str]:
        """Values of exported variables: `export` statements, or all under `set export`."""
        export_all = bool(self.namespace.setting(SETTING_EXPORT, False))
        return {
            name: self.variable(name)
            for name, entry in self._entries.items()
            if export_all or (entry.variable is not None and entry.variable.export)
        }


def evaluate(namespace: Namespace, **options) -> Dict[str, str]:
    """Evaluate every variable of `namespace` (see Evaluator for options)."""
    return Evaluator(namespace, **options).variables()


def _locate(error: EvaluationError, path: Optional[Path], line: Optional[int]) -> None:
    if error.path is None:
        error.path = path
        error.line = line


# ----------------------------------------------------------------------
# Static checks (configuration time)
# ----------------------------------------------------------------------

def _check_expression(
    expr: Expression,
    known: set,
    *,
    path: Optional[Path],
    line: Optional[int],
    recipe: Optional[str] = None,
) -> None:
    for name in references(expr):
        if name not in known:
            raise UnresolvedReferenceError(
                f"'{name}' is neither a parameter nor a variable",
                path=path,
                line=line,
                recipe=recipe,
            )
    for call in calls(expr):
        function = FUNCTIONS.get(call.name)
        if function is None or not function.accepts(len(call.arguments)):
            raise UnknownFunctionError(
                f"no function '{call.name}' taking {len(call.arguments)} argument(s)",
                path=path,
                line=line,
                recipe=recipe,
            )


def check_references(namespace: Namespace) -> None:
    """
    Make sure every name and function used anywhere resolves, before anything
    is evaluated or run.

    Raises:
        UnresolvedReferenceError, UnknownFunctionError, UnknownRecipeError
    """
    variables = set(namespace.variables)

    for var in namespace.variables.values():
        _check_expression(var.expression, variables, path=var.path, line=var.line)

    for alias in namespace.aliases.values():
        if alias.target not in namespace.recipes:
            raise UnknownRecipeError(
                f"alias '{alias.name}' refers to unknown recipe '{alias.target}'",
                path=alias.path,
                line=alias.line,
            )

    for recipe in namespace.recipes.values():
        known = set(variables)
        for param in recipe.parameters:
            if param.default is not None:
                _check_expression(
                    param.default, known, path=recipe.path, line=recipe.line, recipe=recipe.name
                )
            known.add(param.name)

        for dep in recipe.dependencies:
            for arg in dep.arguments:
                _check_expression(arg, known, path=recipe.path, line=dep.line, recipe=recipe.name)

        for body_line in recipe.body:
            for expr in body_line.expressions():
                try:
                    _check_expression(
                        expr, known, path=recipe.path, line=body_line.number, recipe=recipe.name
                    )
                except UnresolvedReferenceError as e:
                    e.message = f"{e.message} in line: {format_line(body_line).strip()}"
                    raise
