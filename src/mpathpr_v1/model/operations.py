from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict, Tuple, Type, Union

from .state import Initiator, IOExpectation, PRState


@dataclass(frozen=True)
class Register:
    unregister: bool = False

    @property
    def name(self) -> str:
        return "REGISTER_UNREGISTER" if self.unregister else "REGISTER_NEW"


@dataclass(frozen=True)
class RegisterIgnore:
    unregister: bool = False

    @property
    def name(self) -> str:
        return "REGISTER_AND_IGNORE_UNREGISTER" if self.unregister else "REGISTER_AND_IGNORE_NEW"


@dataclass(frozen=True)
class Reserve:
    @property
    def name(self) -> str:
        return "RESERVE"


@dataclass(frozen=True)
class Release:
    @property
    def name(self) -> str:
        return "RELEASE"


@dataclass(frozen=True)
class Clear:
    @property
    def name(self) -> str:
        return "CLEAR"


@dataclass(frozen=True)
class Preempt:
    by: Initiator = Initiator.LOCAL

    @property
    def name(self) -> str:
        return "PREEMPT" if self.by is Initiator.LOCAL else "PREEMPT_BY_PEER"


Operation = Union[Register, RegisterIgnore, Reserve, Release, Clear, Preempt]

UNREGISTERED_OPERATIONS: Tuple[Operation, ...] = (Register(), RegisterIgnore())
REGISTERED_OPERATIONS: Tuple[Operation, ...] = (
    Register(),
    Register(unregister=True),
    RegisterIgnore(),
    RegisterIgnore(unregister=True),
    Release(),
    Clear(),
    Preempt(Initiator.LOCAL),
    Preempt(Initiator.PEER),
)


def legal_operations(state: PRState) -> Tuple[Operation, ...]:
    if not state.registered:
        return UNREGISTERED_OPERATIONS
    if state.holder in (None, Initiator.LOCAL):
        return REGISTERED_OPERATIONS + (Reserve(),)
    return REGISTERED_OPERATIONS


def _apply_register(state: PRState, op: Operation, peer_reserved: bool) -> PRState:
    return state.unregistered() if op.unregister else state.with_new_key()


def _apply_reserve(state: PRState, op: Operation, peer_reserved: bool) -> PRState:
    return state.reserved()


def _apply_release(state: PRState, op: Operation, peer_reserved: bool) -> PRState:
    return state.released()


def _apply_clear(state: PRState, op: Operation, peer_reserved: bool) -> PRState:
    return state.cleared()


def _apply_preempt(state: PRState, op: Operation, peer_reserved: bool) -> PRState:
    if op.by is Initiator.PEER:
        return state.local_preempted()
    if peer_reserved:
        state = state.reserved_by_peer()
    return state.peer_preempted()


TRANSITIONS: Dict[Type, Callable[[PRState, Operation, bool], PRState]] = {
    Register: _apply_register,
    RegisterIgnore: _apply_register,
    Reserve: _apply_reserve,
    Release: _apply_release,
    Clear: _apply_clear,
    Preempt: _apply_preempt,
}


def apply_operation(state: PRState, op: Operation, peer_reserved: bool = False) -> PRState:
    try:
        transition = TRANSITIONS[type(op)]
    except KeyError:
        raise TypeError(f"unknown operation {op!r}") from None
    if peer_reserved and not (
        isinstance(op, Preempt) and op.by is Initiator.LOCAL and state.holder is None
    ):
        raise ValueError("only a local preempt of an unreserved LU lets the peer reserve first")
    return transition(state, op, peer_reserved)


def predicted_expectation(state: PRState, op: Operation) -> IOExpectation:
    return apply_operation(state, op).io_expectation()
