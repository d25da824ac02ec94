from __future__ import annotations

import signal
import subprocess
import time
from typing import Callable, List, Optional, Protocol, Sequence

from .. import log
from ..errors import BackgroundProcessFault


class BackgroundProcess(Protocol):
    name: str

    @property
    def running(self) -> bool:
        ...

    @property
    def exit_status(self) -> Optional[int]:
        ...

    def start(self) -> None:
        ...

    def stop(self) -> int:
        ...

    def is_alive(self) -> bool:
        ...

    def check_alive(self) -> None:
        ...


class SupervisedProcess:
    def __init__(
        self,
        name: str,
        argv: Sequence[str],
        stop_timeout: float = 30.0,
        start_grace: float = 0.1,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.name = name
        self.argv: List[str] = list(argv)
        self.stop_timeout = stop_timeout
        self.start_grace = start_grace
        self.sleep = sleep
        self._proc: Optional[subprocess.Popen] = None
        self._exit_status: Optional[int] = None

    @property
    def pid(self) -> Optional[int]:
        return self._proc.pid if self._proc is not None else None

    @property
    def running(self) -> bool:
        return self._proc is not None

    @property
    def exit_status(self) -> Optional[int]:
        if self._proc is not None:
            return self._proc.poll()
        return self._exit_status

    def start(self) -> None:
        if self._proc is not None:
            raise BackgroundProcessFault(self.name, f"already running (PID {self._proc.pid})")
        try:
            self._proc = subprocess.Popen(self.argv, start_new_session=True)
        except OSError as exc:
            raise BackgroundProcessFault(self.name, f"failed to start: {exc}") from exc
        self._exit_status = None
        self.sleep(self.start_grace)
        if self._proc.poll() is not None:
            status = self._reap()
            raise BackgroundProcessFault(
                self.name, f"exited immediately with status {status}", status
            )
        log.info(f"{self.name} started successfully (PID {self._proc.pid})")

    def is_alive(self) -> bool:
        return self._proc is not None and self._proc.poll() is None

    def stop(self) -> int:
        """Terminate, wait a bounded time, and require a clean exit."""
        if self._proc is None:
            raise BackgroundProcessFault(self.name, "is not currently running")
        proc = self._proc
        log.info(f"Stopping {self.name} (PID {proc.pid})")
        if proc.poll() is None:
            proc.send_signal(signal.SIGTERM)
        try:
            proc.wait(timeout=self.stop_timeout)
        except subprocess.TimeoutExpired:
            proc.kill()
            proc.wait()
            self._reap()
            raise BackgroundProcessFault(
                self.name, f"did not exit within {self.stop_timeout}s of SIGTERM"
            ) from None
        status = self._reap()
        if status != 0:
            raise BackgroundProcessFault(self.name, f"failed with exit code {status}", status)
        log.info(f"{self.name} stopped successfully")
        return status

    def check_alive(self) -> None:
        if self._proc is None:
            raise BackgroundProcessFault(self.name, "should be running but is not")
        if self._proc.poll() is not None:
            status = self._reap()
            raise BackgroundProcessFault(
                self.name, f"unexpectedly stopped with exit code {status}", status
            )

    def _reap(self) -> int:
        assert self._proc is not None
        status = self._proc.wait()
        self._exit_status = status
        self._proc = None
        return status
