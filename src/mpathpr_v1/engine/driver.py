from __future__ import annotations

import random
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional

from .. import log
from ..config import Settings
from ..errors import BackgroundProcessFault, ExerciserError, StateMismatch, ToolInvocationFailure
from ..journal.journal import Journal
from ..model.operations import Operation, legal_operations
from ..model.state import UNREGISTERED, IOExpectation, PRState
from ..oracle.controller import OracleController
from ..oracle.supervisor import BackgroundProcess
from ..tools.multipathd import Multipathd
from ..tools.persist import PersistTool
from .executor import Executor
from .verifier import Verifier


class Phase(str, Enum):
    IDLE = "idle"
    SELECTING = "selecting"
    EXECUTING = "executing"
    VERIFYING = "verifying"
    ORACLE_CHECKING = "oracle_checking"
    TERMINATED = "terminated"


@dataclass
class RunResult:
    exit_code: int
    iterations: int
    reason: str
    error: Optional[BaseException] = None
    cleanup_problems: List[str] = field(default_factory=list)


class DriverLoop:
    def __init__(
        self,
        settings: Settings,
        map_name: str,
        local: PersistTool,
        peer: PersistTool,
        verifier: Verifier,
        oracle: OracleController,
        injector: Optional[BackgroundProcess] = None,
        daemon: Optional[Multipathd] = None,
        journal: Optional[Journal] = None,
        rng: Optional[random.Random] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.settings = settings
        self.map_name = map_name
        self.local = local
        self.peer = peer
        self.verifier = verifier
        self.oracle = oracle
        self.injector = injector
        self.daemon = daemon
        self.journal = journal or Journal(None)
        self.rng = rng or random.Random(settings.seed)
        self.sleep = sleep
        self.executor = Executor(local, peer, self.rng)
        self.state = self.initial_state()
        self.phase = Phase.IDLE
        self.iteration = 0
        self._shut_down = False

    def initial_state(self) -> PRState:
        return PRState.initial(self.settings.peer_key, self.settings.first_key)

    def clear_all_registrations(self, verify: bool = False) -> None:
        log.info("Clearing all registrations and reservations...")
        for tool in (self.local, self.peer):
            try:
                tool.register_ignore(UNREGISTERED)
            except ToolInvocationFailure as exc:
                log.warning(f"Unregistering through {tool.device} failed: {exc}")
        self.state = self.initial_state()
        if verify:
            self.verifier.verify_cleared()
        else:
            log.success("All registrations cleared")

    def startup(self) -> None:
        self.clear_all_registrations(verify=True)
        self.state = self.verifier.verify(self.state).state
        self.oracle.start(IOExpectation.PASS)
        if self.injector is not None:
            log.info("Starting background multipath test...")
            self.injector.start()
        self.phase = Phase.SELECTING

    def select(self) -> Operation:
        self.phase = Phase.SELECTING
        op = self.rng.choice(legal_operations(self.state))
        log.info(f"Selected command: {op.name}")
        return op

    def iterate(self) -> None:
        self.iteration += 1
        log.info(f"=== Test iteration {self.iteration} ===")
        op = self.select()

        self.phase = Phase.EXECUTING
        before = self.state
        self.state = self.oracle.run_guarded(
            before, op, lambda: self.executor.execute(before, op)
        )
        self.journal.operation(self.iteration, op, before, self.state)

        self.phase = Phase.VERIFYING
        verification = self.verifier.verify(self.state)
        self.state = verification.state
        self.journal.verified(self.iteration, self.state, verification.status)

        self.phase = Phase.ORACLE_CHECKING
        log.info(
            f"Waiting {self.settings.io_check_interval} seconds for I/O test validation..."
        )
        self.sleep(self.settings.io_check_interval)
        self.oracle.ensure_running()
        if self.injector is not None:
            self.injector.check_alive()
        log.success(f"Iteration {self.iteration} completed successfully")

    def run(self) -> RunResult:
        limit = self.settings.max_iterations
        result = RunResult(exit_code=0, iterations=0, reason="completed")
        try:
            self.startup()
            while limit is None or self.iteration < limit:
                self.iterate()
                if limit is None or self.iteration < limit:
                    self.sleep(self.settings.iteration_pause)
        except KeyboardInterrupt:
            log.info("Interrupted, stopping")
            result.reason = "interrupted"
        except ExerciserError as exc:
            self._report(exc)
            result = RunResult(exit_code=1, iterations=0, reason=type(exc).__name__, error=exc)
        except Exception as exc:  # noqa: BLE001
            log.error(f"Unexpected error in phase {self.phase.value}: {exc!r}")
            result = RunResult(exit_code=1, iterations=0, reason="internal_error", error=exc)
        result.iterations = self.iteration
        result.cleanup_problems = self.shutdown()
        # a probe that fails on its final stop saw a violation in the last window
        if result.reason == "completed" and result.cleanup_problems:
            result.exit_code = 1
            result.reason = "cleanup_failed"
        self.journal.run_end(result.reason, result.exit_code, result.iterations)
        return result

    def _report(self, exc: ExerciserError) -> None:
        log.error(f"{type(exc).__name__} during {self.phase.value}: {exc}")
        output = getattr(exc, "output", "")
        if output:
            log.error("Tool output:")
            log.raw(output)
        if isinstance(exc, BackgroundProcessFault) and exc.exit_status is not None:
            log.error(f"{exc.name} exit status: {exc.exit_status}")
        if isinstance(exc, StateMismatch):
            log.error(f"Tracked state: {self.state.describe()}")

    def _log_exit_state(self) -> None:
        log.info("Exit state.")
        try:
            log.info("Registered keys:")
            log.raw(self.local.read_keys_output())
            log.info("Reservation:")
            log.raw(self.local.read_reservation_output())
        except ExerciserError as exc:
            log.error(f"Could not read PR state: {exc}")
        if self.daemon is not None:
            try:
                log.info("multipath state:")
                log.raw(self.daemon.topology(self.map_name))
            except ExerciserError as exc:
                log.error(f"Could not read multipath state: {exc}")

    def shutdown(self) -> List[str]:
        """Stop background processes and clear the LU. Safe to call repeatedly."""
        if self._shut_down:
            return []
        self._shut_down = True
        self.phase = Phase.TERMINATED
        problems: List[str] = []
        self._log_exit_state()
        log.info("Cleaning up...")
        if self.oracle.running:
            try:
                self.oracle.stop()
            except BackgroundProcessFault as exc:
                log.error(str(exc))
                problems.append(str(exc))
        if self.injector is not None and self.injector.running:
            try:
                self.injector.stop()
            except BackgroundProcessFault as exc:
                log.error(str(exc))
                problems.append(str(exc))
        self.clear_all_registrations(verify=False)
        log.info("Cleanup complete")
        return problems
