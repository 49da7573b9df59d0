"""Console output formatting utilities for runbook."""

from __future__ import annotations

import sys
from typing import Iterable, Optional

from ..errors import RunbookError
from ..formatter import format_parameter
from ..model import Namespace, RunResult, ToleratedFailure


class Console:
    """Centralized console output formatting."""

    def __init__(self, debug: bool = False):
        """
        Initialize console formatter.

        Args:
            debug: If True, show detailed output including stack traces
        """
        self.debug = debug

    def print_command(self, command: str) -> None:
        """Echo a command line before it runs (stderr, so stdout stays the command's)."""
        print(command, file=sys.stderr)

    def print_tolerated(self, failure: ToleratedFailure) -> None:
        """Print a failure that was allowed to continue."""
        print(
            f"[{failure.recipe}] ignoring exit code {failure.status}: {failure.command}",
            file=sys.stderr,
        )

    def print_results(self, result: RunResult) -> None:
        """Print the final summary: tolerated failures and the fatal one, if any."""
        if not result.tolerated and result.failure is None:
            return
        print("\n" + "=" * 40, file=sys.stderr)
        print("RESULTS", file=sys.stderr)
        print("=" * 40, file=sys.stderr)
        for failure in result.tolerated:
            print(f"  {failure.recipe}: TOLERATED (exit={failure.status}) {failure.command}", file=sys.stderr)
        if result.failure is not None:
            failure = result.failure
            print(f"  {failure.recipe}: FAILED (exit={failure.status}) {failure.command}", file=sys.stderr)

    def print_recipes(self, namespace: Namespace) -> None:
        """List public recipes with their parameters and doc comments, then aliases."""
        rows = []
        for recipe in namespace.recipes.values():
            if recipe.private:
                continue
            signature = " ".join([recipe.name, *(format_parameter(p) for p in recipe.parameters)])
            rows.append((signature, recipe.doc))

        print("Available recipes:")
        width = max((len(sig) for sig, _ in rows), default=0)
        for signature, doc in rows:
            if doc:
                print(f"    {signature.ljust(width)} # {doc}")
            else:
                print(f"    {signature}")

        public_aliases = [a for a in namespace.aliases.values() if not a.name.startswith("_")]
        if public_aliases:
            print("Aliases:")
            for alias in public_aliases:
                print(f"    {alias.name} -> {alias.target}")

    def print_variables(self, values: dict[str, str]) -> None:
        width = max((len(name) for name in values), default=0)
        for name, value in values.items():
            print(f"{name.ljust(width)} := {value!r}")

    def print_error(
        self,
        title: str,
        message: str,
        details: Optional[Iterable[str]] = None,
        suggestion: Optional[str] = None,
    ) -> None:
        """
        Print structured error message.

        Args:
            title: Error title
            message: Main error message
            details: Optional list of detail lines
            suggestion: Optional suggestion for user
        """
        print(f"\nERROR: {title}", file=sys.stderr)
        print(f"{message}", file=sys.stderr)
        if details:
            for detail in details:
                print(f"  {detail}", file=sys.stderr)
        if suggestion:
            print(f"\n{suggestion}", file=sys.stderr)

    def print_runbook_error(self, exc: RunbookError) -> None:
        """Print one engine error as a single diagnostic."""
        details = []
        where = exc.location()
        if where:
            details.append(f"at {where}")
        recipe = getattr(exc, "recipe", None)
        if recipe:
            details.append(f"recipe: {recipe}")
        message = getattr(exc, "message", None) or str(exc)
        self.print_error(exc.kind, message, details=details)
        if self.debug:
            import traceback
            traceback.print_exception(type(exc), exc, exc.__traceback__)

    def print_exception(self, exc: Exception) -> None:
        """Print exception, with full traceback only in debug mode."""
        if self.debug:
            import traceback
            traceback.print_exc()
        else:
            print(f"Error: {exc}", file=sys.stderr)

    def print_info(self, message: str) -> None:
        """Print informational message."""
        print(message)

    def print_debug(self, message: str) -> None:
        """Print debug message (only if debug mode enabled)."""
        if self.debug:
            print(f"[DEBUG] {message}", file=sys.stderr)


# Global console instance (will be initialized by CLI)
_console: Optional[Console] = None


def get_console() -> Console:
    """Get the global console instance."""
    global _console
    if _console is None:
        _console = Console()
    return _console


def set_console(console: Console) -> None:
    """Set the global console instance."""
    global _console
    _console = console
