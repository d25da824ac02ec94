from __future__ import annotations

import os
from typing import Iterable, List

from .. import log
from ..errors import ExerciserError, IdentifierMismatch
from ..tools.multipathd import Multipathd, device_serial
from ..tools.runner import CommandRunner

LOCAL_TOOLS = ("mpathpersist", "multipath", "multipathd", "sg_dd", "dmsetup")
PEER_TOOLS = ("sg_persist", "udevadm")


def check_root() -> None:
    if os.geteuid() != 0:
        raise ExerciserError("This program must be run as root")


def missing_tools(runner: CommandRunner, tools: Iterable[str]) -> List[str]:
    return [tool for tool in tools if not runner.which(tool)]


def check_tools(local: CommandRunner, peer: CommandRunner) -> None:
    missing = missing_tools(local, LOCAL_TOOLS) + missing_tools(peer, PEER_TOOLS)
    if missing:
        raise ExerciserError(f"Required command(s) not found: {', '.join(missing)}")


def verify_device_wwids(
    daemon: Multipathd, map_name: str, peer_runner: CommandRunner, device: str
) -> str:
    log.info(f"Verifying that {map_name} and {device} point to the same storage...")
    map_wwid = daemon.map_wwid(map_name)
    if not map_wwid:
        raise IdentifierMismatch(f"Could not get WWID for {map_name}")
    device_wwid = device_serial(peer_runner, device)
    if not device_wwid:
        raise IdentifierMismatch(f"Could not get WWID for {device}")
    if map_wwid != device_wwid:
        raise IdentifierMismatch(f"Device WWIDs do not match: {map_wwid} vs {device_wwid}")
    log.success(f"Device WWIDs match: {map_wwid}")
    return map_wwid
