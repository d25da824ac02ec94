from __future__ import annotations

import shlex
import shutil
import subprocess
from dataclasses import dataclass
from typing import List, Optional, Protocol, Sequence

from ..errors import ToolInvocationFailure


@dataclass(frozen=True)
class CommandResult:
    argv: List[str]
    returncode: int
    stdout: str
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @property
    def output(self) -> str:
        if self.stderr:
            return f"{self.stdout}{self.stderr}"
        return self.stdout


class CommandRunner(Protocol):
    def run(self, argv: Sequence[str]) -> CommandResult:
        ...

    def which(self, program: str) -> bool:
        ...


class LocalRunner:
    def __init__(self, timeout_s: Optional[float] = 120.0) -> None:
        self.timeout_s = timeout_s

    def run(self, argv: Sequence[str]) -> CommandResult:
        argv = list(argv)
        try:
            proc = subprocess.run(
                argv,
                capture_output=True,
                text=True,
                timeout=self.timeout_s,
                check=False,
            )
        except subprocess.TimeoutExpired as exc:
            raise ToolInvocationFailure(
                argv, None, reason=f"timed out after {exc.timeout}s"
            ) from exc
        except OSError as exc:
            raise ToolInvocationFailure(argv, None, reason=f"could not be started: {exc}") from exc
        return CommandResult(argv, proc.returncode, proc.stdout or "", proc.stderr or "")

    def which(self, program: str) -> bool:
        return shutil.which(program) is not None


class RemoteRunner:
    def __init__(
        self,
        host: str,
        ssh_command: Sequence[str] = ("ssh", "-o", "BatchMode=yes"),
        local: Optional[LocalRunner] = None,
    ) -> None:
        self.host = host
        self.ssh_command = list(ssh_command)
        self.local = local or LocalRunner()

    def wrap(self, argv: Sequence[str]) -> List[str]:
        return [*self.ssh_command, self.host, shlex.join(list(argv))]

    def run(self, argv: Sequence[str]) -> CommandResult:
        result = self.local.run(self.wrap(argv))
        # ssh reports its own failures as 255
        if result.returncode == 255:
            raise ToolInvocationFailure(
                result.argv, 255, result.output, reason=f"ssh to {self.host} failed"
            )
        return CommandResult(list(argv), result.returncode, result.stdout, result.stderr)

    def which(self, program: str) -> bool:
        result = self.local.run(self.wrap(["sh", "-c", f"command -v {shlex.quote(program)}"]))
        return result.ok
