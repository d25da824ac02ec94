from __future__ import annotations

from typing import List, Optional

from ..errors import ToolInvocationFailure
from ..schemas import DaemonPRView
from .parse import (
    build_daemon_view,
    parse_checker_interval,
    parse_map_paths,
    parse_map_wwid,
    parse_path_state,
)
from .runner import CommandResult, CommandRunner


def _checked(result: CommandResult) -> str:
    if not result.ok:
        raise ToolInvocationFailure(result.argv, result.returncode, result.output)
    return result.stdout


class Multipathd:
    def __init__(self, runner: CommandRunner) -> None:
        self.runner = runner

    def _query(self, *args: str) -> str:
        return _checked(self.runner.run(["multipathd", *args]))

    def pr_view(self, map_name: str) -> DaemonPRView:
        return build_daemon_view(
            self._query("getprkey", "map", map_name),
            self._query("getprstatus", "map", map_name),
            self._query("getprhold", "map", map_name),
        )

    def map_wwid(self, map_name: str) -> Optional[str]:
        return parse_map_wwid(self._query("show", "maps", "raw", "format", "%n %w"), map_name)

    def map_paths(self, map_name: str) -> List[str]:
        return parse_map_paths(self._query("show", "paths", "raw", "format", "%m %d"), map_name)

    def path_state(self, path: str) -> Optional[str]:
        return parse_path_state(self._query("show", "paths", "raw", "format", "%d %t"), path)

    def checker_interval(self, path: str) -> Optional[int]:
        return parse_checker_interval(
            self._query("show", "paths", "raw", "format", "%d %C"), path
        )

    def topology(self, map_name: str) -> str:
        return self.runner.run(["multipath", "-l", map_name]).output


def device_serial(runner: CommandRunner, device: str) -> Optional[str]:
    result = runner.run(
        ["udevadm", "info", "-n", device, "--query=property", "--property=ID_SERIAL", "--value"]
    )
    value = _checked(result).strip()
    return value or None


def is_multipath_map(runner: CommandRunner, map_name: str) -> bool:
    result = runner.run(["dmsetup", "table", map_name])
    return result.ok and "multipath" in result.stdout
