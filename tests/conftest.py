"""Shared pytest fixtures: recipe files in tmp_path and a recording shell."""

from __future__ import annotations

import textwrap
from pathlib import Path
from typing import Callable, Dict, List, Optional

import pytest

from runbook.loader import resolve
from runbook.model import Namespace
from runbook.runner import Runner
from runbook.ui.console import Console


class RecordingShell:
    """Shell stand-in: records commands instead of spawning processes."""

    def __init__(
        self,
        statuses: Optional[Dict[str, int]] = None,
        outputs: Optional[Dict[str, str]] = None,
    ):
        self.program = ("sh", "-cu")
        self.statuses = statuses or {}
        self.outputs = outputs or {}
        self.commands: List[str] = []
        self.captured: List[str] = []
        self.calls: List[dict] = []

    def run(self, command, *, cwd, env, args=()):
        self.commands.append(command)
        self.calls.append({"command": command, "cwd": cwd, "env": env, "args": tuple(args)})
        return self.statuses.get(command, 0)

    def capture(self, command, *, cwd, env=None):
        self.captured.append(command)
        return self.outputs.get(command, "")


@pytest.fixture
def write(tmp_path: Path) -> Callable[..., Path]:
    """Write dedented recipe-file text under tmp_path and return its path."""

    def _write(text: str, name: str = "runbook") -> Path:
        path = tmp_path / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(textwrap.dedent(text).lstrip("\n"), encoding="utf-8")
        return path

    return _write


@pytest.fixture
def namespace(write) -> Callable[[str], Namespace]:
    def _namespace(text: str) -> Namespace:
        return resolve(write(text))

    return _namespace


@pytest.fixture
def shell() -> RecordingShell:
    return RecordingShell()


@pytest.fixture
def runner(namespace, shell, tmp_path) -> Callable[..., Runner]:
    """Runner over recipe text, wired to the recording shell by default."""

    def _runner(text: str, **options) -> Runner:
        options.setdefault("shell", shell)
        options.setdefault("console", Console())
        options.setdefault("invocation_directory", tmp_path)
        return Runner(namespace(text), **options)

    return _runner
