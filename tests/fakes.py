"""In-memory stand-ins for the storage stack and the background processes."""

from __future__ import annotations

from typing import Dict, List, Optional, Sequence

from mpathpr_v1.errors import BackgroundProcessFault
from mpathpr_v1.model.state import IOExpectation
from mpathpr_v1.tools.runner import CommandResult

LOCAL = "local"
PEER = "peer"
TYPE_DESCRIPTION = "Write Exclusive, registrants only"


def _hex(key: int) -> str:
    return f"0x{key:x}"


def _option(argv: Sequence[str], name: str) -> Optional[int]:
    prefix = f"--{name}="
    for arg in argv:
        if arg.startswith(prefix):
            return int(arg[len(prefix):], 16)
    return None


class FakeLogicalUnit:
    """One LU with Write-Exclusive Registrants-Only PR semantics.

    ``mpathpersist`` on the map acts as the local initiator, ``sg_persist`` on
    the device as the peer. Knobs on the instance make the target misbehave.
    """

    def __init__(self, map_name: str = "mpatha", device: str = "sdb", wwid: str = "36001405fa4e") -> None:
        self.map_name = map_name
        self.device = device
        self.wwid = wwid
        self.peer_wwid = wwid
        self.registrations: Dict[str, int] = {}
        self.reservation: Optional[str] = None
        self.generation = 0
        self.calls: List[List[str]] = []
        self.unit_attentions: Dict[str, int] = {}
        self.failures: Dict[str, int] = {}
        self.ignore_preempt = False
        self.ignore_release = False
        self.stale_prkey: Optional[int] = None
        self.peer_stale_key: Optional[int] = None

    # -- CommandRunner -------------------------------------------------

    def which(self, program: str) -> bool:
        return True

    def run(self, argv: Sequence[str]) -> CommandResult:
        argv = list(argv)
        self.calls.append(argv)
        program = argv[0]
        if self.unit_attentions.get(program, 0) > 0:
            self.unit_attentions[program] -= 1
            return CommandResult(argv, 6, "", "persistent reserve out: Unit attention\n")
        if self.failures.get(program, 0) > 0:
            self.failures[program] -= 1
            return CommandResult(argv, 1, "", "illegal request\n")
        if program == "mpathpersist":
            return self._persist(argv, LOCAL, f"/dev/mapper/{self.map_name}")
        if program == "sg_persist":
            return self._persist(argv, PEER, f"/dev/{self.device}")
        if program == "multipathd":
            return self._multipathd(argv)
        if program == "udevadm":
            return CommandResult(argv, 0, f"{self.peer_wwid}\n")
        if program == "multipath":
            return CommandResult(argv, 0, f"{self.map_name} ({self.wwid}) dm-0 FAKE,DISK\n")
        if program == "dmsetup":
            return CommandResult(argv, 0, "0 2097152 multipath 0 0 1 1 round-robin 0 2 1\n")
        return CommandResult(argv, 127, "", f"{program}: command not found\n")

    # -- PR semantics --------------------------------------------------

    def io_allowed(self, initiator: str = LOCAL) -> bool:
        return initiator in self.registrations or self.reservation is None

    def _registered_with(self, initiator: str, rk: Optional[int]) -> bool:
        return initiator in self.registrations and self.registrations[initiator] == rk

    def _persist(self, argv: List[str], initiator: str, device: str) -> CommandResult:
        if argv[-1] != device:
            return CommandResult(argv, 1, "", f"{argv[-1]}: no such device\n")
        if "-ik" in argv:
            return CommandResult(argv, 0, self._keys_text(initiator))
        if "-ir" in argv:
            return CommandResult(argv, 0, self._reservation_text(initiator))
        rk = _option(argv, "param-rk")
        sark = _option(argv, "param-sark")
        if "--register" in argv or "--register-ignore" in argv:
            ok = self._register(initiator, rk, sark or 0, "--register-ignore" in argv)
        elif "--reserve" in argv:
            ok = self._reserve(initiator, rk)
        elif "--release" in argv:
            ok = self._release(initiator, rk)
        elif "--clear" in argv:
            ok = self._clear(initiator, rk)
        elif "--preempt" in argv:
            ok = self._preempt(initiator, rk, sark)
        else:
            return CommandResult(argv, 1, "", "unsupported\n")
        if not ok:
            return CommandResult(argv, 24, "", "reservation conflict\n")
        self.generation += 1
        return CommandResult(argv, 0, "")

    def _register(self, initiator: str, rk: Optional[int], sark: int, ignore: bool) -> bool:
        if initiator in self.registrations:
            if not ignore and rk != self.registrations[initiator]:
                return False
            if sark == 0:
                del self.registrations[initiator]
                if self.reservation == initiator:
                    self.reservation = None
            else:
                self.registrations[initiator] = sark
            return True
        if not ignore and rk not in (None, 0):
            return False
        if sark != 0:
            self.registrations[initiator] = sark
        return True

    def _reserve(self, initiator: str, rk: Optional[int]) -> bool:
        if not self._registered_with(initiator, rk):
            return False
        if self.reservation in (None, initiator):
            self.reservation = initiator
            return True
        return False

    def _release(self, initiator: str, rk: Optional[int]) -> bool:
        if not self._registered_with(initiator, rk):
            return False
        if self.reservation == initiator and not self.ignore_release:
            self.reservation = None
        return True

    def _clear(self, initiator: str, rk: Optional[int]) -> bool:
        if not self._registered_with(initiator, rk):
            return False
        self.registrations.clear()
        self.reservation = None
        return True

    def _preempt(self, initiator: str, rk: Optional[int], sark: Optional[int]) -> bool:
        if not self._registered_with(initiator, rk) or not sark:
            return False
        victims = [name for name, key in self.registrations.items() if key == sark]
        if not victims:
            return False
        if self.reservation in victims:
            self.reservation = initiator
        if not self.ignore_preempt:
            for name in victims:
                del self.registrations[name]
        return True

    # -- tool output ---------------------------------------------------

    def _keys(self) -> List[int]:
        return [self.registrations[name] for name in (LOCAL, PEER) if name in self.registrations]

    def _keys_text(self, initiator: str) -> str:
        keys = self._keys()
        if initiator == LOCAL:
            head = f"  PR generation=0x{self.generation:x}, \t"
            if not keys:
                return head + "0 registered reservation key.\n"
            noun = "key follows" if len(keys) == 1 else "keys follow"
            body = "".join(f"    {_hex(key)}\n" for key in keys)
            return head + f"{len(keys)} registered reservation {noun}:\n" + body
        head = "  FAKE      DISK              1.0\n  Peripheral device type: disk\n"
        head += f"  PR generation=0x{self.generation:x}, "
        if self.peer_stale_key is not None:
            keys = keys + [self.peer_stale_key]
        if not keys:
            return head + "there are NO registered reservation keys\n"
        noun = "key follows" if len(keys) == 1 else "keys follow"
        body = "".join(f"    {_hex(key)}\n" for key in keys)
        return head + f"{len(keys)} registered reservation {noun}:\n" + body

    def _reservation_text(self, initiator: str) -> str:
        if initiator == LOCAL:
            head = f"  PR generation=0x{self.generation:x}, \t"
            if self.reservation is None:
                return head + "there is NO reservation held \n"
            key = self.registrations[self.reservation]
            return (
                head
                + "Reservation follows:\n"
                + f"   Key = {_hex(key)}\n"
                + f"  scope = LU_SCOPE, type = {TYPE_DESCRIPTION}\n"
            )
        head = "  FAKE      DISK              1.0\n  Peripheral device type: disk\n"
        head += f"  PR generation=0x{self.generation:x}, "
        if self.reservation is None:
            return head + "there is NO reservation held\n"
        key = self.registrations[self.reservation]
        return (
            head
            + "Reservation follows:\n"
            + f"    Key={_hex(key)}\n"
            + f"    scope: LU_SCOPE,  type: {TYPE_DESCRIPTION}\n"
        )

    def _multipathd(self, argv: List[str]) -> CommandResult:
        command = argv[1:]
        if command[:1] == ["getprkey"]:
            key = self.stale_prkey if self.stale_prkey is not None else self.registrations.get(LOCAL)
            return CommandResult(argv, 0, f"{_hex(key) if key else 'none'}\n")
        if command[:1] == ["getprstatus"]:
            return CommandResult(argv, 0, "set\n" if LOCAL in self.registrations else "unset\n")
        if command[:1] == ["getprhold"]:
            return CommandResult(argv, 0, "set\n" if self.reservation == LOCAL else "unset\n")
        if command[:2] == ["show", "maps"]:
            return CommandResult(argv, 0, f"{self.map_name} {self.wwid}\n")
        if command[:2] == ["show", "paths"] and command[-1] == "%m %d":
            return CommandResult(argv, 0, f"{self.map_name} sdc\n{self.map_name} sdd\n")
        return CommandResult(argv, 1, "", "fail\n")


class FakeProcess:
    def __init__(self, name: str, expectation: Optional[IOExpectation] = None) -> None:
        self.name = name
        self.expectation = expectation
        self.started = False
        self.stopped = False
        self.dead_status: Optional[int] = None
        self.stop_status = 0

    @property
    def running(self) -> bool:
        return self.started and not self.stopped

    @property
    def exit_status(self) -> Optional[int]:
        return self.dead_status

    def start(self) -> None:
        self.started = True

    def is_alive(self) -> bool:
        return self.running and self.dead_status is None

    def check_alive(self) -> None:
        if self.dead_status is not None:
            raise BackgroundProcessFault(
                self.name, f"unexpectedly stopped with exit code {self.dead_status}", self.dead_status
            )

    def stop(self) -> int:
        self.stopped = True
        status = self.dead_status if self.dead_status is not None else self.stop_status
        if status != 0:
            raise BackgroundProcessFault(self.name, f"failed with exit code {status}", status)
        return 0


class FakeLauncher:
    """Hands out FakeProcess oracles and remembers each one."""

    def __init__(self) -> None:
        self.processes: List[FakeProcess] = []

    def __call__(self, expectation: IOExpectation) -> FakeProcess:
        process = FakeProcess("I/O test", expectation)
        self.processes.append(process)
        return process

    @property
    def current(self) -> Optional[FakeProcess]:
        return self.processes[-1] if self.processes else None

    @property
    def expectations(self) -> List[IOExpectation]:
        return [process.expectation for process in self.processes]
