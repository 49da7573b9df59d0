# cli.py
from __future__ import annotations

import logging
import sys
from pathlib import Path

import click

from runbook.constants import EXIT_INTERRUPTED
from runbook.errors import RunbookError, UnknownRecipeError, UnresolvedReferenceError
from runbook.formatter import format_namespace, format_recipe
from runbook.loader import load
from runbook.runner import Runner
from runbook.ui.console import Console, get_console, set_console


def _load_namespace(ctx: click.Context):
    return load(ctx.obj["file"], start=Path.cwd())


def _make_runner(ctx: click.Context, *, dry_run: bool = False) -> Runner:
    namespace = _load_namespace(ctx)
    return Runner(
        namespace,
        overrides=ctx.obj["overrides"],
        working_directory=ctx.obj["working_directory"],
        dry_run=dry_run,
        console=get_console(),
    )


def _fail(ctx: click.Context, exc: BaseException) -> None:
    """Report an error the way every command does and exit with its code."""
    console = get_console()
    if isinstance(exc, KeyboardInterrupt):
        console.print_info("\nInterrupted by user")
        sys.exit(EXIT_INTERRUPTED)
    if isinstance(exc, RunbookError):
        console.print_runbook_error(exc)
        sys.exit(exc.exit_code)
    console.print_exception(exc)
    sys.exit(1)


@click.group()
@click.option(
    "--file",
    "-f",
    "file",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    envvar="RUNBOOK_FILE",
    help="Recipe file (defaults to the nearest runbook/justfile)",
)
@click.option(
    "--working-directory",
    "-d",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    envvar="RUNBOOK_WORKING_DIRECTORY",
    help="Run recipes in this directory instead of the recipe file's",
)
@click.option(
    "--set",
    "overrides",
    nargs=2,
    multiple=True,
    metavar="NAME VALUE",
    help="Override a variable (repeatable)",
)
@click.option(
    "--debug",
    is_flag=True,
    default=False,
    envvar="RUNBOOK_DEBUG",
    help="Enable debug mode (show stack traces and detailed output)",
)
@click.pass_context
def cli(ctx, file, working_directory, overrides, debug):
    """runbook: declarative task runner."""
    console = Console(debug=debug)
    set_console(console)
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug
    ctx.obj["file"] = file
    ctx.obj["working_directory"] = working_directory
    ctx.obj["overrides"] = dict(overrides)


@cli.command(
    context_settings={"ignore_unknown_options": True, "allow_interspersed_args": False},
)
@click.option("--dry-run", is_flag=True, default=False, help="Print commands without running them")
@click.argument("recipe", required=False)
@click.argument("args", nargs=-1, type=click.UNPROCESSED)
@click.pass_context
def run(ctx, dry_run, recipe, args):
    """Run RECIPE (default: the first recipe) with positional ARGS."""
    console = get_console()
    try:
        runner = _make_runner(ctx, dry_run=dry_run)
        result = runner.run(recipe, list(args))
    except (Exception, KeyboardInterrupt) as e:
        _fail(ctx, e)
        return

    console.print_debug(f"run finished: {result.state.value} (exit={result.exit_code})")
    console.print_results(result)
    if result.exit_code:
        sys.exit(result.exit_code)


@cli.command(name="list")
@click.pass_context
def list_recipes(ctx):
    """List available recipes."""
    try:
        namespace = _load_namespace(ctx)
    except (Exception, KeyboardInterrupt) as e:
        _fail(ctx, e)
        return
    get_console().print_recipes(namespace)


@cli.command()
@click.argument("recipe")
@click.pass_context
def show(ctx, recipe):
    """Print the source of RECIPE."""
    try:
        namespace = _load_namespace(ctx)
        found = namespace.lookup(recipe)
        if found is None:
            raise UnknownRecipeError(f"no recipe named '{recipe}'", path=namespace.root)
    except (Exception, KeyboardInterrupt) as e:
        _fail(ctx, e)
        return
    get_console().print_info(format_recipe(found))


@cli.command()
@click.argument("name", required=False)
@click.pass_context
def evaluate(ctx, name):
    """Evaluate and print one variable, or all of them."""
    console = get_console()
    try:
        runner = _make_runner(ctx)
        if name is None:
            console.print_variables(runner.evaluator.variables())
            return
        if name not in runner.namespace.variables:
            raise UnresolvedReferenceError(f"variable '{name}' is not defined")
        console.print_info(runner.evaluator.variable(name))
    except (Exception, KeyboardInterrupt) as e:
        _fail(ctx, e)


@cli.command()
@click.pass_context
def dump(ctx):
    """Print the merged recipe file (all imports inlined)."""
    try:
        namespace = _load_namespace(ctx)
    except (Exception, KeyboardInterrupt) as e:
        _fail(ctx, e)
        return
    click.echo(format_namespace(namespace), nl=False)


if __name__ == "__main__":
    cli()
