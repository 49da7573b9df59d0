# runner.py
"""
Executor: target + arguments -> run plan -> interpolated lines -> shell.

States: PLANNING -> INTERPOLATING -> INVOKING -> COMPLETED | FAILED

Planning, argument binding and interpolation finish for every planned recipe
before the first line is handed to the shell, so configuration errors never
show up after a side effect.
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Sequence, Set, Tuple

from .constants import (
    DEFAULT_SHELL,
    EXIT_OK,
    SETTING_EXPORT,
    SETTING_POSITIONAL_ARGUMENTS,
    SETTING_QUIET,
    SETTING_SHELL,
    SETTING_WORKING_DIRECTORY,
)
from .dag import build_graph
from .errors import (
    ArityError,
    CommandFailure,
    ConfigurationError,
    MissingArgumentError,
    UnknownRecipeError,
)
from .loader import load
from .model import (
    Interpolation,
    Namespace,
    ParameterKind,
    PlannedRecipe,
    Recipe,
    RunPlan,
    RunResult,
    RunState,
    Text,
    ToleratedFailure,
)
from .shell import Shell
from .ui.console import Console, get_console
from .variables import Evaluator, check_references

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Command:
    """One interpolated body line, ready for the shell."""
    text: str
    echo: bool
    tolerate: bool
    line: int = 0


@dataclass
class PreparedRecipe:
    name: str
    commands: List[Command]
    cwd: Path
    env: Dict[str, str] = field(default_factory=dict)
    args: Tuple[str, ...] = ()


class Runner:
    def __init__(
        self,
        namespace: Namespace,
        *,
        shell: Optional[Shell] = None,
        overrides: Optional[Mapping[str, str]] = None,
        invocation_directory: Optional[Path] = None,
        working_directory: Optional[Path] = None,
        dry_run: bool = False,
        console: Optional[Console] = None,
    ):
        self.namespace = namespace
        self.invocation_directory = (invocation_directory or Path.cwd()).resolve()
        self.dry_run = dry_run
        self.console = console or get_console()

        # configuration errors surface here, before anything is evaluated
        check_references(namespace)
        self.graph = build_graph(namespace.recipes)

        self.shell = shell or Shell(tuple(namespace.setting(SETTING_SHELL, DEFAULT_SHELL)))
        self.evaluator = Evaluator(
            namespace,
            shell=self.shell,
            overrides=overrides,
            invocation_directory=self.invocation_directory,
        )

        base = working_directory or namespace.directory
        setting = namespace.setting(SETTING_WORKING_DIRECTORY)
        if setting and working_directory is None:
            base = base / setting
        self.working_directory = Path(base).resolve()

    # ------------------------------------------------------------------
    # Planning + binding
    # ------------------------------------------------------------------

    def plan(self, target: Optional[str] = None, args: Sequence[str] = ()) -> RunPlan:
        """
        Post-order DFS from `target`: every prerequisite before the recipe
        that needs it. A recipe with the same bound arguments is planned once,
        unless it is marked [rerun].
        """
        name = target or self.namespace.default_recipe
        if name is None:
            raise UnknownRecipeError("no recipes defined", path=self.namespace.root)
        recipe = self.namespace.lookup(name)
        if recipe is None:
            raise UnknownRecipeError(
                f"no recipe named '{name}'. Known recipes: {sorted(self.namespace.recipes)}",
                path=self.namespace.root,
            )

        plan = RunPlan(target=recipe.name)
        planned: Set[Tuple[str, Tuple[str, ...]]] = set()
        # supplied values -> binding, so defaults (backticks included) bind once
        bound: Dict[Tuple[str, Tuple[str, ...]], PlannedRecipe] = {}

        def visit(recipe: Recipe, values: Sequence[str]) -> None:
            supplied = (recipe.name, tuple(values))
            entry = bound.get(supplied)
            if entry is None:
                entry = bound[supplied] = self.bind(recipe, values)
            if entry.key in planned and not recipe.rerun:
                return
            for dep in self.graph.dependencies(recipe.name):
                dep_values = [
                    self.evaluator.evaluate(arg, entry.scope, path=recipe.path, line=dep.line)
                    for arg in dep.arguments
                ]
                visit(self.graph.recipes[dep.recipe], dep_values)
            planned.add(entry.key)
            plan.entries.append(entry)

        visit(recipe, list(args))
        logger.debug("plan for %s: %s", plan.target, plan.names())
        return plan

    def bind(self, recipe: Recipe, values: Sequence[str]) -> PlannedRecipe:
        """Bind positional values to the recipe's parameters."""
        high = recipe.max_arguments()
        if high is not None and len(values) > high:
            raise ArityError(
                f"recipe '{recipe.name}' takes at most {high} argument(s), got {len(values)}",
                path=recipe.path,
                line=recipe.line,
                recipe=recipe.name,
            )

        scope: Dict[str, str] = {}
        positional: List[str] = []
        i = 0
        for param in recipe.parameters:
            if param.variadic:
                rest = list(values[i:])
                i = len(values)
                if not rest and param.default is not None:
                    rest = [self._default(recipe, param.default, scope)]
                if not rest and param.kind is ParameterKind.PLUS:
                    raise MissingArgumentError(
                        f"recipe '{recipe.name}' requires at least one value for '+{param.name}'",
                        path=recipe.path,
                        line=recipe.line,
                        recipe=recipe.name,
                    )
                scope[param.name] = " ".join(rest)
                positional.extend(rest)
            elif i < len(values):
                scope[param.name] = values[i]
                positional.append(values[i])
                i += 1
            elif param.default is not None:
                value = self._default(recipe, param.default, scope)
                scope[param.name] = value
                positional.append(value)
            else:
                raise MissingArgumentError(
                    f"recipe '{recipe.name}' requires a value for parameter '{param.name}'",
                    path=recipe.path,
                    line=recipe.line,
                    recipe=recipe.name,
                )

        return PlannedRecipe(
            recipe=recipe,
            arguments=tuple(positional),
            scope=scope,
        )

    def _default(self, recipe: Recipe, expr, scope: Mapping[str, str]) -> str:
        return self.evaluator.evaluate(expr, scope, path=recipe.path, line=recipe.line)

    # ------------------------------------------------------------------
    # Interpolation
    # ------------------------------------------------------------------

    def interpolate(self, entry: PlannedRecipe) -> PreparedRecipe:
        recipe = entry.recipe
        quiet = recipe.silent or bool(self.namespace.setting(SETTING_QUIET, False))
        tolerate_all = recipe.tolerate_errors

        commands: List[Command] = []
        for line in recipe.body:
            parts: List[str] = []
            for fragment in line.fragments:
                if isinstance(fragment, Text):
                    parts.append(fragment.value)
                    continue
                assert isinstance(fragment, Interpolation)
                parts.append(
                    self.evaluator.evaluate(
                        fragment.expression, entry.scope, path=recipe.path, line=line.number
                    )
                )

            echo = not quiet
            if line.flip_echo:
                echo = not echo
            commands.append(
                Command(
                    text="".join(parts),
                    echo=echo,
                    tolerate=tolerate_all or line.tolerate_error,
                    line=line.number,
                )
            )

        env = dict(os.environ)
        env.update(self.evaluator.exports())
        export_all = bool(self.namespace.setting(SETTING_EXPORT, False))
        for param in recipe.parameters:
            if param.export or export_all:
                env[param.name] = entry.scope[param.name]

        args: Tuple[str, ...] = ()
        if self.namespace.setting(SETTING_POSITIONAL_ARGUMENTS, False):
            args = (recipe.name, *entry.arguments)

        return PreparedRecipe(
            name=recipe.name,
            commands=commands,
            cwd=self._cwd(recipe),
            env=env,
            args=args,
        )

    def _cwd(self, recipe: Recipe) -> Path:
        base = self.invocation_directory if recipe.no_cd else self.working_directory
        if recipe.working_directory:
            base = base / recipe.working_directory
        cwd = base.resolve()
        if not cwd.is_dir():
            raise ConfigurationError(
                f"working directory not found: {cwd}",
                path=recipe.path,
                line=recipe.line,
                recipe=recipe.name,
            )
        return cwd

    # ------------------------------------------------------------------
    # Invocation
    # ------------------------------------------------------------------

    def run(self, target: Optional[str] = None, args: Sequence[str] = ()) -> RunResult:
        """
        Plan, interpolate and invoke `target`.

        Configuration and evaluation errors are raised. An untolerated command
        failure ends the run: the result is FAILED and carries the failure and
        the command's exit code.
        """
        result = RunResult(state=RunState.PLANNING, exit_code=EXIT_OK)
        plan = self.plan(target, args)

        result.state = RunState.INTERPOLATING
        prepared = [self.interpolate(entry) for entry in plan.entries]

        result.state = RunState.INVOKING
        try:
            for recipe in prepared:
                self._invoke(recipe, result)
        except CommandFailure as failure:
            result.state = RunState.FAILED
            result.exit_code = failure.exit_code
            result.failure = failure
            return result

        result.state = RunState.COMPLETED
        return result

    def _invoke(self, recipe: PreparedRecipe, result: RunResult) -> None:
        logger.debug("running %s in %s", recipe.name, recipe.cwd)
        for command in recipe.commands:
            if command.echo or self.dry_run:
                self.console.print_command(command.text)
            if self.dry_run:
                continue

            result.executed.append(command.text)
            status = self.shell.run(command.text, cwd=recipe.cwd, env=recipe.env, args=recipe.args)
            if status == 0:
                continue
            if command.tolerate:
                tolerated = ToleratedFailure(recipe.name, command.text, status)
                result.tolerated.append(tolerated)
                self.console.print_tolerated(tolerated)
                continue
            raise CommandFailure(recipe=recipe.name, command=command.text, status=status)


# ----------------------------------------------------------------------
# Public API
# ----------------------------------------------------------------------

def run_recipe(
    target: Optional[str] = None,
    args: Sequence[str] = (),
    *,
    path: Optional[str | Path] = None,
    **options,
) -> RunResult:
    """Load the recipe file (discovered when `path` is None) and run `target`."""
    namespace = load(path)
    return Runner(namespace, **options).run(target, args)
