from __future__ import annotations

import sys
from typing import Callable, List, Optional

from .. import log
from ..config import Settings
from ..errors import BackgroundProcessFault
from ..model.operations import Operation, predicted_expectation
from ..model.state import IOExpectation, PRState
from .supervisor import BackgroundProcess, SupervisedProcess

Launcher = Callable[[IOExpectation], BackgroundProcess]


def io_probe_argv(device_path: str, expectation: IOExpectation, interval: float) -> List[str]:
    return [
        sys.executable,
        "-m",
        "mpathpr_v1.oracle.io_probe",
        device_path,
        expectation.value,
        "--interval",
        str(interval),
    ]


def io_probe_launcher(device_path: str, settings: Settings) -> Launcher:
    def launch(expectation: IOExpectation) -> BackgroundProcess:
        return SupervisedProcess(
            "I/O test",
            io_probe_argv(device_path, expectation, settings.io_interval),
            stop_timeout=settings.process_stop_timeout,
            start_grace=settings.oracle_start_grace,
        )

    return launch


class OracleController:
    def __init__(self, launcher: Launcher) -> None:
        self.launcher = launcher
        self.process: Optional[BackgroundProcess] = None
        self.expectation: Optional[IOExpectation] = None

    @property
    def running(self) -> bool:
        return self.process is not None

    def start(self, expectation: IOExpectation) -> None:
        if self.process is not None:
            raise BackgroundProcessFault(
                "I/O test", f"is already running (expected: {self.expectation.value})"
            )
        log.info(f"Starting background I/O test (expected: {expectation.value})")
        process = self.launcher(expectation)
        process.start()
        self.process = process
        self.expectation = expectation

    def stop(self) -> None:
        if self.process is None:
            raise BackgroundProcessFault("I/O test", "is not currently running")
        try:
            self.process.stop()
        except BackgroundProcessFault:
            self._forget()
            raise
        self._forget()

    def _forget(self) -> None:
        self.process = None
        self.expectation = None

    def run_guarded(
        self, state: PRState, op: Operation, action: Callable[[], PRState]
    ) -> PRState:
        if predicted_expectation(state, op) == self.expectation:
            return action()
        log.info("I/O expectation will change, stopping I/O test")
        self.stop()
        new_state = action()
        expectation = new_state.io_expectation()
        log.info(f"Restarting I/O test with new expectation: {expectation.value}")
        self.start(expectation)
        return new_state

    def ensure_running(self) -> None:
        if self.process is None:
            raise BackgroundProcessFault("I/O test", "should be running but is not")
        try:
            self.process.check_alive()
        except BackgroundProcessFault:
            self._forget()
            raise
        log.info("I/O test is running normally")
