from __future__ import annotations

import logging
import os
import subprocess
from dataclasses import dataclass
from typing import Mapping, Protocol, Sequence


log = logging.getLogger(__name__)


@dataclass(frozen=True)
class CommandResult:
    args: tuple[str, ...]
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class CommandRunner(Protocol):
    def __call__(
        self,
        args: Sequence[str],
        env: Mapping[str, str] | None = None,
        cwd: str | None = None,
    ) -> CommandResult: ...


def run_command(
    args: Sequence[str],
    env: Mapping[str, str] | None = None,
    cwd: str | None = None,
    timeout_s: float | None = None,
) -> CommandResult:
    """Run an external command to completion and capture both streams.

    ``env`` is layered on top of the inherited process environment.
    A missing executable is reported as exit code 127, like a shell would.
    """
    full_env = None
    if env:
        full_env = dict(os.environ)
        full_env.update(env)

    log.debug("exec: %s", " ".join(args))
    try:
        proc = subprocess.run(
            list(args),
            env=full_env,
            cwd=cwd,
            capture_output=True,
            text=True,
            timeout=timeout_s,
        )
    except FileNotFoundError as e:
        return CommandResult(tuple(args), 127, "", str(e))
    return CommandResult(tuple(args), proc.returncode, proc.stdout or "", proc.stderr or "")
