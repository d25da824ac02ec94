from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Dict, Optional

from ..utils import format_key

UNREGISTERED = 0x0


class Initiator(str, Enum):
    LOCAL = "local"
    PEER = "peer"


class IOExpectation(str, Enum):
    PASS = "pass"
    FAIL = "fail"


@dataclass(frozen=True)
class PRState:
    local_key: int = UNREGISTERED
    peer_key: int = 0x1
    next_key: int = 0x2
    holder: Optional[Initiator] = None
    pending_preemption: Optional[int] = None

    @classmethod
    def initial(cls, peer_key: int = 0x1, first_key: int = 0x2) -> "PRState":
        if peer_key == UNREGISTERED:
            raise ValueError("peer key must be non-zero")
        # fresh keys only ever grow, so starting above the peer key keeps them distinct
        if first_key <= peer_key:
            raise ValueError("first key must be greater than the peer key")
        return cls(peer_key=peer_key, next_key=first_key)

    @property
    def registered(self) -> bool:
        return self.local_key != UNREGISTERED

    def holder_key(self) -> Optional[int]:
        if self.holder is Initiator.LOCAL:
            return self.local_key
        if self.holder is Initiator.PEER:
            return self.peer_key
        return None

    def io_expectation(self) -> IOExpectation:
        if self.registered or self.holder is None:
            return IOExpectation.PASS
        return IOExpectation.FAIL

    def with_new_key(self) -> "PRState":
        return replace(self, local_key=self.next_key, next_key=self.next_key + 1)

    def unregistered(self) -> "PRState":
        holder = None if self.holder is Initiator.LOCAL else self.holder
        return replace(self, local_key=UNREGISTERED, holder=holder)

    def reserved(self) -> "PRState":
        return replace(self, holder=Initiator.LOCAL)

    def released(self) -> "PRState":
        holder = None if self.holder is Initiator.LOCAL else self.holder
        return replace(self, holder=holder)

    def cleared(self) -> "PRState":
        return replace(self, local_key=UNREGISTERED, holder=None)

    def reserved_by_peer(self) -> "PRState":
        return replace(self, holder=Initiator.PEER)

    def peer_preempted(self) -> "PRState":
        holder = Initiator.LOCAL if self.holder is Initiator.PEER else self.holder
        return replace(self, holder=holder, pending_preemption=self.peer_key)

    def local_preempted(self) -> "PRState":
        holder = Initiator.PEER if self.holder is Initiator.LOCAL else self.holder
        return replace(
            self,
            local_key=UNREGISTERED,
            holder=holder,
            pending_preemption=self.local_key,
        )

    def preemption_confirmed(self) -> "PRState":
        return replace(self, pending_preemption=None)

    def describe(self) -> str:
        holder = self.holder.value if self.holder else "none"
        return f"local_key={format_key(self.local_key)}, reservation_holder={holder}"

    def to_record(self) -> Dict[str, Any]:
        return {
            "local_key": format_key(self.local_key),
            "peer_key": format_key(self.peer_key),
            "next_key": format_key(self.next_key),
            "holder": self.holder.value if self.holder else None,
            "pending_preemption": (
                format_key(self.pending_preemption)
                if self.pending_preemption is not None
                else None
            ),
        }
