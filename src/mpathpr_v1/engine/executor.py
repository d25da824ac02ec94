from __future__ import annotations

import random
from typing import Callable, Dict, Type

from .. import log
from ..model.operations import (
    Clear,
    Operation,
    Preempt,
    Register,
    RegisterIgnore,
    Release,
    Reserve,
    apply_operation,
)
from ..model.state import UNREGISTERED, Initiator, PRState
from ..tools.persist import PersistTool
from ..utils import format_key


class Executor:
    def __init__(self, local: PersistTool, peer: PersistTool, rng: random.Random) -> None:
        self.local = local
        self.peer = peer
        self.rng = rng
        self._handlers: Dict[Type, Callable[[PRState, Operation], PRState]] = {
            Register: self._register,
            RegisterIgnore: self._register_ignore,
            Reserve: self._reserve,
            Release: self._release,
            Clear: self._clear,
            Preempt: self._preempt,
        }

    def execute(self, state: PRState, op: Operation) -> PRState:
        try:
            handler = self._handlers[type(op)]
        except KeyError:
            raise TypeError(f"unknown operation {op!r}") from None
        return handler(state, op)

    def _register(self, state: PRState, op: Register) -> PRState:
        rk = state.local_key if state.registered else None
        if op.unregister:
            log.info(f"Executing REGISTER to unregister local key {format_key(state.local_key)}")
            self.local.register(rk, UNREGISTERED)
        else:
            log.info(
                f"Executing REGISTER with new key "
                f"({format_key(state.local_key)} -> {format_key(state.next_key)})"
            )
            self.local.register(rk, state.next_key)
        return apply_operation(state, op)

    def _register_ignore(self, state: PRState, op: RegisterIgnore) -> PRState:
        sark = UNREGISTERED if op.unregister else state.next_key
        log.info(
            f"Executing REGISTER_AND_IGNORE "
            f"({format_key(state.local_key)} -> {format_key(sark)})"
        )
        self.local.register_ignore(sark)
        return apply_operation(state, op)

    def _reserve(self, state: PRState, op: Reserve) -> PRState:
        log.info(f"Executing RESERVE (key={format_key(state.local_key)})")
        self.local.reserve(state.local_key)
        return apply_operation(state, op)

    def _release(self, state: PRState, op: Release) -> PRState:
        log.info(f"Executing RELEASE (key={format_key(state.local_key)})")
        self.local.release(state.local_key)
        return apply_operation(state, op)

    def _clear(self, state: PRState, op: Clear) -> PRState:
        log.info(f"Executing CLEAR (key={format_key(state.local_key)})")
        self.local.clear(state.local_key)
        return apply_operation(state, op)

    def _register_peer(self, state: PRState) -> None:
        log.info(f"Registering peer with key {format_key(state.peer_key)}")
        self.peer.register_ignore(state.peer_key)

    def _preempt(self, state: PRState, op: Preempt) -> PRState:
        self._register_peer(state)
        if op.by is Initiator.PEER:
            log.info(
                f"Peer preempting local "
                f"({format_key(state.peer_key)} preempts {format_key(state.local_key)})"
            )
            self.peer.preempt(state.peer_key, state.local_key)
            return apply_operation(state, op)
        peer_reserved = False
        if state.holder is None and self.rng.random() < 0.5:
            log.info("Peer grabbing reservation")
            self.peer.reserve(state.peer_key)
            peer_reserved = True
        log.info(
            f"Local preempting peer "
            f"({format_key(state.local_key)} preempts {format_key(state.peer_key)})"
        )
        self.local.preempt(state.local_key, state.peer_key)
        return apply_operation(state, op, peer_reserved=peer_reserved)
