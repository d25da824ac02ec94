from __future__ import annotations

import re
from typing import FrozenSet, Optional

from ..errors import OutputParseError
from ..schemas import DaemonPRView, PRStatus, Reservation
from ..utils import parse_key

# mpathpersist says "0 registered reservation key", sg_persist says
# "there are NO registered reservation keys"
_NO_KEYS_RE = re.compile(
    r"(?:\b0 registered reservation key|there are NO registered reservation keys)"
)
_KEYS_HEADER_RE = re.compile(r"registered reservation keys? follows?:")
_KEY_LINE_RE = re.compile(r"^\s*(0x[0-9a-fA-F]+)\s*$")
_NO_RESERVATION_RE = re.compile(r"there is NO reservation held")
_RESERVATION_KEY_RE = re.compile(r"Key\s*=\s*(0x[0-9a-fA-F]+)")
_RESERVATION_TYPE_RE = re.compile(r"type\s*[:=]\s*(.+?)\s*$", re.MULTILINE)
_FLAG_VALUES = {"set", "unset"}


def parse_read_keys(output: str) -> FrozenSet[int]:
    if _NO_KEYS_RE.search(output):
        return frozenset()
    if not _KEYS_HEADER_RE.search(output):
        raise OutputParseError("registered keys", output)
    keys = set()
    for line in output.splitlines():
        match = _KEY_LINE_RE.match(line)
        if match:
            keys.add(parse_key(match.group(1)))
    return frozenset(keys)


def parse_read_reservation(output: str) -> Optional[Reservation]:
    if _NO_RESERVATION_RE.search(output):
        return None
    match = _RESERVATION_KEY_RE.search(output)
    if match is None:
        raise OutputParseError("reservation", output)
    type_match = _RESERVATION_TYPE_RE.search(output, match.end())
    return Reservation(
        key=parse_key(match.group(1)),
        type_description=type_match.group(1) if type_match else "",
    )


def build_status(keys_output: str, reservation_output: str) -> PRStatus:
    return PRStatus(
        registered_keys=parse_read_keys(keys_output),
        reservation=parse_read_reservation(reservation_output),
    )


def parse_prkey(output: str) -> Optional[int]:
    value = output.strip()
    if value == "none":
        return None
    try:
        return parse_key(value)
    except ValueError:
        raise OutputParseError("multipathd prkey", output) from None


def parse_flag(output: str, what: str) -> str:
    value = output.strip()
    if value not in _FLAG_VALUES:
        raise OutputParseError(what, output)
    return value


def build_daemon_view(prkey_output: str, prstatus_output: str, prhold_output: str) -> DaemonPRView:
    return DaemonPRView(
        prkey=parse_prkey(prkey_output),
        prstatus=parse_flag(prstatus_output, "multipathd prstatus"),
        prhold=parse_flag(prhold_output, "multipathd prhold"),
    )


def parse_map_wwid(output: str, map_name: str) -> Optional[str]:
    for line in output.splitlines():
        fields = line.split()
        if len(fields) >= 2 and fields[0] == map_name:
            return fields[1]
    return None


def parse_map_paths(output: str, map_name: str) -> list[str]:
    paths = []
    for line in output.splitlines():
        fields = line.split()
        if len(fields) >= 2 and fields[0] == map_name:
            paths.append(fields[1])
    return paths


def parse_path_state(output: str, path: str) -> Optional[str]:
    for line in output.splitlines():
        fields = line.split()
        if len(fields) >= 2 and fields[0] == path:
            return fields[1]
    return None


def parse_checker_interval(output: str, path: str) -> Optional[int]:
    for line in output.splitlines():
        fields = line.split()
        if len(fields) >= 2 and fields[0] == path:
            match = re.match(r"(\d+)/", fields[-1])
            if match:
                return int(match.group(1))
    return None
