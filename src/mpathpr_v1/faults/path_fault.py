from __future__ import annotations

import argparse
import signal
import sys
import time
from pathlib import Path
from typing import Callable, List, Optional, Sequence

from .. import log
from ..errors import ExerciserError
from ..tools.multipathd import Multipathd, is_multipath_map
from ..tools.runner import CommandRunner, LocalRunner

SYSFS_BLOCK = Path("/sys/block")
OFFLINE = "offline"
RUNNING = "running"


class InjectorTerminated(Exception):
    pass


class PathFaultInjector:
    def __init__(
        self,
        map_name: str,
        runner: Optional[CommandRunner] = None,
        sysfs_root: Path = SYSFS_BLOCK,
        cycle_delay: float = 2.0,
        wait_polls: int = 30,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.map_name = map_name
        self.daemon = Multipathd(runner or LocalRunner())
        self.sysfs_root = sysfs_root
        self.cycle_delay = cycle_delay
        self.wait_polls = wait_polls
        self.sleep = sleep
        self.paths: List[str] = []

    def state_file(self, path: str) -> Path:
        return self.sysfs_root / path / "device" / "state"

    def discover(self) -> List[str]:
        self.paths = self.daemon.map_paths(self.map_name)
        if not self.paths:
            raise ExerciserError(f"No paths found for device {self.map_name}")
        log.info(f"Found {len(self.paths)} paths: {' '.join(self.paths)}")
        return self.paths

    def set_state(self, path: str, state: str) -> bool:
        state_file = self.state_file(path)
        if not state_file.exists():
            log.error(f"State file {state_file} does not exist")
            return False
        log.info(f"Setting {path} to {state}...")
        state_file.write_text(f"{state}\n", encoding="utf-8")
        current = state_file.read_text(encoding="utf-8").strip()
        if current != state:
            log.error(f"Failed to set {path} to {state} (current: {current})")
            return False
        log.success(f"Successfully set {path} to {state}")
        return True

    def wait_for(self, path: str, expected: str) -> bool:
        log.info(f"Waiting for multipathd to notice {path} is {expected}...")
        for _ in range(self.wait_polls):
            if self.daemon.path_state(path) == expected:
                log.success(f"multipathd detected {path} as {expected}")
                return True
            delay = self.daemon.checker_interval(path) or 1
            log.info(f"waiting {delay}s for {path} to be in {expected}")
            self.sleep(delay)
        log.warning(f"Timeout waiting for multipathd to detect {path} state change")
        return False

    def cycle_path(self, path: str) -> None:
        log.info(f"Testing path: {path}")
        if not self.set_state(path, OFFLINE):
            log.error(f"Failed to disable {path}")
            return
        self.wait_for(path, "failed")
        if not self.set_state(path, RUNNING):
            log.error(f"Failed to re-enable {path}")
            return
        self.wait_for(path, "active")

    def enable_all(self) -> bool:
        log.info("Enabling all paths...")
        ok = all([self.set_state(path, RUNNING) for path in self.paths])
        if ok:
            log.info("All paths enabled")
        return ok

    def run(self, max_cycles: Optional[int] = None) -> None:
        cycle = 1
        while max_cycles is None or cycle <= max_cycles:
            log.info(f"Starting cycle {cycle}")
            for path in self.paths:
                self.cycle_path(path)
                log.info(f"Waiting {self.cycle_delay} seconds before next path...")
                self.sleep(self.cycle_delay)
            log.success(f"Completed cycle {cycle}")
            cycle += 1

    def restore(self) -> None:
        log.info("Cleaning up...")
        for path in self.paths:
            try:
                self.set_state(path, RUNNING)
            except OSError as exc:
                log.error(f"Failed to restore {path}: {exc}")
        log.info("Cleanup complete")


def _terminate(signum: int, frame: object) -> None:
    raise InjectorTerminated()


def main(argv: Sequence[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Multipath path failure/recovery injector")
    parser.add_argument("map_name", help="multipath device name, e.g. mpatha")
    parser.add_argument("--cycle-delay", type=float, default=2.0)
    parser.add_argument("--wait-polls", type=int, default=30)
    args = parser.parse_args(argv)

    runner = LocalRunner()
    if not is_multipath_map(runner, args.map_name):
        log.error(f"{args.map_name} is not a multipath device")
        return 1
    injector = PathFaultInjector(
        args.map_name,
        runner=runner,
        cycle_delay=args.cycle_delay,
        wait_polls=args.wait_polls,
    )
    signal.signal(signal.SIGTERM, _terminate)
    log.info(f"Starting multipath path failure test for device: {args.map_name}")
    try:
        injector.discover()
        if not injector.enable_all():
            return 1
        injector.run()
    except InjectorTerminated:
        return 0
    except ExerciserError as exc:
        log.error(str(exc))
        return 1
    finally:
        signal.signal(signal.SIGTERM, signal.SIG_IGN)
        injector.restore()
    return 0


if __name__ == "__main__":
    sys.exit(main())
