# shell.py
# The only place that spawns processes. Recipe lines stream to the terminal;
# backticks are captured.

from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional, Sequence, Tuple

from .constants import DEFAULT_SHELL
from .errors import ShellEvaluationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Shell:
    """External command interpreter, e.g. ("sh", "-cu") or ("bash", "-c")."""
    program: Tuple[str, ...] = DEFAULT_SHELL

    def argv(self, command: str, args: Sequence[str] = ()) -> list[str]:
        return [*self.program, command, *args]

    def run(
        self,
        command: str,
        *,
        cwd: Path,
        env: Dict[str, str],
        args: Sequence[str] = (),
    ) -> int:
        """
        Run one command line, blocking until it exits.

        stdout/stderr are inherited so output streams to the invoking terminal.

        Returns:
            The process exit code.
        """
        logger.debug("run %r in %s", command, cwd)
        try:
            proc = subprocess.run(self.argv(command, args), cwd=str(cwd), env=env)
        except FileNotFoundError:
            logger.error("shell not found: %s", self.program[0])
            return 127
        return proc.returncode

    def capture(
        self,
        command: str,
        *,
        cwd: Path,
        env: Optional[Dict[str, str]] = None,
    ) -> str:
        """
        Run a backtick command and return its trimmed stdout.

        Raises:
            ShellEvaluationError: if the command exits non-zero or its output
                is not valid UTF-8.
        """
        logger.debug("capture %r in %s", command, cwd)
        try:
            proc = subprocess.run(
                self.argv(command),
                cwd=str(cwd),
                env=env,
                capture_output=True,
            )
        except FileNotFoundError as e:
            raise ShellEvaluationError(
                f"shell not found: {self.program[0]}", command=command, status=127
            ) from e
        if proc.returncode != 0:
            raise ShellEvaluationError(
                f"backtick exited with status {proc.returncode}",
                command=command,
                status=proc.returncode,
                stderr=proc.stderr.decode("utf-8", errors="replace"),
            )
        try:
            stdout = proc.stdout.decode("utf-8")
        except UnicodeDecodeError as e:
            raise ShellEvaluationError(
                f"backtick output is not valid UTF-8 (byte offset {e.start})",
                command=command,
                status=proc.returncode,
            ) from e
        return stdout.strip()
