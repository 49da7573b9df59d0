# functions.py
"""Builtin functions callable from expressions, e.g. `{{ env_var('HOME') }}`."""
from __future__ import annotations

import os
import platform
import shlex
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, Optional

from .errors import EvaluationError


@dataclass(frozen=True)
class FunctionContext:
    invocation_directory: Path
    source_file: Optional[Path] = None


@dataclass(frozen=True)
class Function:
    min_args: int
    max_args: int
    impl: Callable[..., str]

    def accepts(self, count: int) -> bool:
        return self.min_args <= count <= self.max_args


def _env_var(ctx: FunctionContext, name: str) -> str:
    if name not in os.environ:
        raise EvaluationError(f"environment variable '{name}' is not set")
    return os.environ[name]


def _env_var_or_default(ctx: FunctionContext, name: str, default: str) -> str:
    return os.environ.get(name, default)


def _source_file(ctx: FunctionContext) -> str:
    if ctx.source_file is None:
        raise EvaluationError("source_file() used outside of a recipe file")
    return str(ctx.source_file)


def _source_directory(ctx: FunctionContext) -> str:
    return str(Path(_source_file(ctx)).parent)


def _os_name(ctx: FunctionContext) -> str:
    return platform.system().lower()


FUNCTIONS: Dict[str, Function] = {
    "env_var": Function(1, 1, _env_var),
    "env_var_or_default": Function(2, 2, _env_var_or_default),
    "invocation_directory": Function(0, 0, lambda ctx: str(ctx.invocation_directory)),
    "source_file": Function(0, 0, _source_file),
    "source_directory": Function(0, 0, _source_directory),
    "os": Function(0, 0, _os_name),
    "arch": Function(0, 0, lambda ctx: platform.machine()),
    "num_cpus": Function(0, 0, lambda ctx: str(os.cpu_count() or 1)),
    "uppercase": Function(1, 1, lambda ctx, s: s.upper()),
    "lowercase": Function(1, 1, lambda ctx, s: s.lower()),
    "trim": Function(1, 1, lambda ctx, s: s.strip()),
    "quote": Function(1, 1, lambda ctx, s: shlex.quote(s)),
}
