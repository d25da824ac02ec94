from __future__ import annotations

import argparse
import os
import signal
import sys
import time
from typing import Callable, List, Optional, Sequence

from .. import log
from ..model.state import IOExpectation
from ..tools.persist import RESERVATION_CONFLICT
from ..tools.runner import CommandRunner, LocalRunner
from .reprobe import probe_paths


class ProbeTerminated(Exception):
    pass


def sg_dd_argv(device: str) -> List[str]:
    return [
        "sg_dd",
        "if=/dev/zero",
        f"of={device}",
        "bs=512",
        "bpt=8",
        "count=8",
        "oflag=direct,sgio",
    ]


class IOProbe:
    def __init__(
        self,
        device: str,
        expectation: IOExpectation,
        runner: Optional[CommandRunner] = None,
        reprobe: Callable[[str], bool] = probe_paths,
        interval: float = 0.1,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.device = device
        self.expectation = expectation
        self.runner = runner or LocalRunner()
        self.reprobe = reprobe
        self.interval = interval
        self.sleep = sleep

    def attempt(self) -> Optional[str]:
        result = self.runner.run(sg_dd_argv(self.device))
        if result.ok:
            if self.expectation is IOExpectation.FAIL:
                return "I/O succeeded but was expected to fail"
            log.progress(".")
            return None
        if self.expectation is IOExpectation.PASS:
            if result.returncode == RESERVATION_CONFLICT:
                return "I/O failed with conflict but was expected to pass"
            log.info(f"I/O failed with {result.returncode}. checking paths")
            try:
                usable = self.reprobe(self.device)
            except OSError as exc:
                return f"probing paths failed: {exc}"
            if not usable:
                return "probing paths failed: no usable paths"
        log.progress("x")
        return None

    def run(self, max_attempts: Optional[int] = None) -> Optional[str]:
        attempts = 0
        while max_attempts is None or attempts < max_attempts:
            failure = self.attempt()
            if failure is not None:
                return failure
            attempts += 1
            self.sleep(self.interval)
        return None


def _terminate(signum: int, frame: object) -> None:
    raise ProbeTerminated()


def main(argv: Sequence[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Repeatedly test I/O operations on a block device")
    parser.add_argument("device", help="path to block device")
    parser.add_argument("expected", choices=[item.value for item in IOExpectation])
    parser.add_argument("--interval", type=float, default=0.1)
    args = parser.parse_args(argv)

    if not os.path.exists(args.device):
        log.error(f"Device '{args.device}' does not exist")
        return 1

    signal.signal(signal.SIGTERM, _terminate)
    probe = IOProbe(args.device, IOExpectation(args.expected), interval=args.interval)
    log.info(f"Starting I/O test on {args.device} (expected: {args.expected})")
    try:
        failure = probe.run()
    except ProbeTerminated:
        log.info("Received TERM signal, exiting successfully")
        return 0
    log.error(f"FAILURE: {failure}")
    return 1


if __name__ == "__main__":
    sys.exit(main())
