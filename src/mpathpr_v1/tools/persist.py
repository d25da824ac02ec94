from __future__ import annotations

import time
from typing import Callable, FrozenSet, List, Optional

from .. import log
from ..errors import ToolInvocationFailure, UnitAttentionError
from ..schemas import PRStatus, Reservation
from ..utils import format_key
from .parse import build_status, parse_read_keys, parse_read_reservation
from .runner import CommandResult, CommandRunner

UNIT_ATTENTION = 6
RESERVATION_CONFLICT = 24


class PersistTool:
    def __init__(
        self,
        program: str,
        device: str,
        runner: CommandRunner,
        prout_type: int = 5,
        retries: int = 3,
        retry_delay: float = 0.1,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.program = program
        self.device = device
        self.runner = runner
        self.prout_type = prout_type
        self.retries = retries
        self.retry_delay = retry_delay
        self.sleep = sleep

    @classmethod
    def for_map(cls, map_name: str, runner: CommandRunner, **kwargs) -> "PersistTool":
        return cls("mpathpersist", f"/dev/mapper/{map_name}", runner, **kwargs)

    @classmethod
    def for_device(cls, device: str, runner: CommandRunner, **kwargs) -> "PersistTool":
        return cls("sg_persist", f"/dev/{device}", runner, **kwargs)

    def _run(self, args: List[str]) -> CommandResult:
        argv = [self.program, *args, self.device]
        attempt = 0
        while True:
            result = self.runner.run(argv)
            if result.returncode != UNIT_ATTENTION:
                break
            attempt += 1
            if attempt >= self.retries:
                log.error(
                    f"{self.program} failed after {self.retries} retries due to Unit Attention"
                )
                raise UnitAttentionError(
                    argv, UNIT_ATTENTION, result.output, reason="unit attention"
                )
            log.info(f"Unit Attention occurred (attempt {attempt}/{self.retries}), retrying...")
            self.sleep(self.retry_delay)
        if not result.ok:
            reason = "reservation conflict" if result.returncode == RESERVATION_CONFLICT else ""
            raise ToolInvocationFailure(argv, result.returncode, result.output, reason=reason)
        return result

    def _prout(
        self,
        action: str,
        rk: Optional[int] = None,
        sark: Optional[int] = None,
        typed: bool = False,
    ) -> CommandResult:
        args = ["--out", f"--{action}"]
        if rk is not None:
            args.append(f"--param-rk={format_key(rk)}")
        if sark is not None:
            args.append(f"--param-sark={format_key(sark)}")
        if typed:
            args.append(f"--prout-type={self.prout_type}")
        return self._run(args)

    def register(self, rk: Optional[int], sark: int) -> CommandResult:
        return self._prout("register", rk=rk, sark=sark)

    def register_ignore(self, sark: int) -> CommandResult:
        return self._prout("register-ignore", sark=sark)

    def reserve(self, rk: int) -> CommandResult:
        return self._prout("reserve", rk=rk, typed=True)

    def release(self, rk: int) -> CommandResult:
        return self._prout("release", rk=rk, typed=True)

    def clear(self, rk: int) -> CommandResult:
        return self._prout("clear", rk=rk)

    def preempt(self, rk: int, sark: int) -> CommandResult:
        return self._prout("preempt", rk=rk, sark=sark, typed=True)

    def read_keys_output(self) -> str:
        return self._run(["-ik"]).stdout

    def read_reservation_output(self) -> str:
        return self._run(["-ir"]).stdout

    def read_keys(self) -> FrozenSet[int]:
        return parse_read_keys(self.read_keys_output())

    def read_reservation(self) -> Optional[Reservation]:
        return parse_read_reservation(self.read_reservation_output())

    def read_status(self) -> PRStatus:
        return build_status(self.read_keys_output(), self.read_reservation_output())
