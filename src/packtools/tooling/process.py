"""Single place for secure local tool invocation.

Uses shell=False, list args, and a controlled environment.
"""

from __future__ import annotations

import logging
import os
import subprocess  # nosec B404 - used with shell=False, list args, controlled env
from collections.abc import Sequence
from pathlib import Path
from typing import Protocol

from pydantic import BaseModel, ConfigDict, Field

from packtools.errors import CancellationToken

_LOGGER = logging.getLogger(__name__)

MISSING_EXECUTABLE_EXIT_CODE = -1


class ProcessRequest(BaseModel):
    """One tool invocation."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    file_name: str = Field(min_length=1)
    arguments: tuple[str, ...] = ()
    working_directory: str | None = None
    environment: dict[str, str] | None = None


class ProcessResult(BaseModel):
    """Exit code and captured output of one invocation."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    exit_code: int
    stdout: str = ""
    stderr: str = ""

    @property
    def success(self) -> bool:
        """Exit code zero means success."""
        return self.exit_code == 0


class ProcessRunner(Protocol):
    """Executes tools and captures their output."""

    def execute(
        self,
        request: ProcessRequest,
        *,
        cancellation: CancellationToken | None = None,
    ) -> ProcessResult:
        """Run one tool invocation.

        Args:
            request: Invocation.
            cancellation: Optional cancellation token.
        """


def minimal_env() -> dict[str, str]:
    """Minimal env for subprocess (PATH only).

    Returns:
        Dict with PATH only; callers overlay request variables.
    """
    return {"PATH": os.environ.get("PATH", "")}


def run_subprocess(
    argv: Sequence[str],
    *,
    cwd: str | Path | None = None,
    env: dict[str, str] | None = None,
    timeout: float | None = None,
) -> subprocess.CompletedProcess[str]:
    """Run a subprocess with shell=False, list args, and controlled env.

    Returncode is not checked; caller inspects result.returncode.

    Args:
        argv: Command and arguments as a list (no shell parsing).
        cwd: Working directory for the subprocess.
        env: Environment dict; defaults to minimal_env() if None.
        timeout: Optional timeout in seconds.

    Returns:
        CompletedProcess with stdout, stderr, returncode.
    """
    return subprocess.run(  # noqa: PLW1510  # nosec B603 - shell=False, list args, controlled env
        list(argv),
        cwd=str(cwd) if cwd is not None else None,
        env=env or minimal_env(),
        capture_output=True,
        text=True,
        timeout=timeout,
        shell=False,
    )


class LocalProcessRunner:
    """Run tools on the local host."""

    def __init__(self, *, timeout: float | None = None) -> None:
        """Initialize runner.

        Args:
            timeout: Optional per-invocation timeout in seconds.
        """
        self._timeout = timeout

    def execute(
        self,
        request: ProcessRequest,
        *,
        cancellation: CancellationToken | None = None,
    ) -> ProcessResult:
        """Run one invocation locally.

        A missing executable or timeout yields exit code -1 with the error
        text on stderr.

        Args:
            request: Invocation.
            cancellation: Optional cancellation token.

        Returns:
            Process result.
        """
        if cancellation is not None:
            cancellation.raise_if_cancelled()
        env = minimal_env()
        if request.environment:
            env.update(request.environment)
        argv = [request.file_name, *request.arguments]
        _LOGGER.debug("tooling.local_execute tool=%s", request.file_name)
        try:
            completed = run_subprocess(
                argv,
                cwd=request.working_directory,
                env=env,
                timeout=self._timeout,
            )
        except FileNotFoundError as exc:
            return ProcessResult(
                exit_code=MISSING_EXECUTABLE_EXIT_CODE,
                stderr=f"Executable not found: {request.file_name} ({exc})",
            )
        except subprocess.TimeoutExpired:
            return ProcessResult(
                exit_code=MISSING_EXECUTABLE_EXIT_CODE,
                stderr=f"Timed out after {self._timeout}s: {request.file_name}",
            )
        return ProcessResult(
            exit_code=completed.returncode,
            stdout=completed.stdout or "",
            stderr=completed.stderr or "",
        )
