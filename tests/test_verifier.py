import random

import pytest

from fakes import FakeLogicalUnit
from mpathpr_v1.engine.executor import Executor
from mpathpr_v1.engine.verifier import Verifier
from mpathpr_v1.errors import StateMismatch
from mpathpr_v1.model import Initiator, Preempt, PRState, Register, Release, Reserve
from mpathpr_v1.tools.multipathd import Multipathd
from mpathpr_v1.tools.persist import PersistTool


def _setup(
    lu: FakeLogicalUnit, cross_check: bool = False
) -> tuple[Executor, Verifier]:
    local = PersistTool.for_map(lu.map_name, lu, sleep=lambda _: None)
    peer = PersistTool.for_device(lu.device, lu, sleep=lambda _: None)
    verifier = Verifier(
        local, lu.map_name, daemon=Multipathd(lu), peer=peer if cross_check else None
    )
    return Executor(local, peer, random.Random(3)), verifier


def test_verifies_a_matching_state() -> None:
    lu = FakeLogicalUnit()
    executor, verifier = _setup(lu, cross_check=True)
    state = executor.execute(PRState.initial(), Register())
    state = executor.execute(state, Reserve())
    verification = verifier.verify(state)
    assert verification.state == state
    assert verification.status.reservation.key == 0x2
    assert verification.daemon.prhold == "set"


def test_missing_local_key() -> None:
    lu = FakeLogicalUnit()
    _, verifier = _setup(lu)
    with pytest.raises(StateMismatch) as excinfo:
        verifier.verify(PRState(local_key=0x2, next_key=0x3))
    assert "0x2" in str(excinfo.value)
    assert "0 registered reservation key" in excinfo.value.output


def test_unexpected_reservation() -> None:
    lu = FakeLogicalUnit()
    executor, verifier = _setup(lu)
    state = executor.execute(PRState.initial(), Register())
    state = executor.execute(state, Reserve())
    with pytest.raises(StateMismatch, match="no reservation should exist"):
        verifier.verify(state.released())


def test_release_that_does_not_release() -> None:
    lu = FakeLogicalUnit()
    lu.ignore_release = True
    executor, verifier = _setup(lu)
    state = executor.execute(PRState.initial(), Register())
    state = executor.execute(state, Reserve())
    state = executor.execute(state, Release())
    with pytest.raises(StateMismatch):
        verifier.verify(state)


def test_wrong_reservation_holder() -> None:
    lu = FakeLogicalUnit()
    executor, verifier = _setup(lu)
    state = executor.execute(PRState.initial(), Register())
    state = executor.execute(state, Reserve())
    with pytest.raises(StateMismatch, match="does not match expected 0x1 for peer"):
        verifier.verify(state.reserved_by_peer())


def test_preempted_key_confirmed_and_cleared() -> None:
    lu = FakeLogicalUnit()
    executor, verifier = _setup(lu)
    state = executor.execute(PRState.initial(), Register())
    state = executor.execute(state, Preempt(Initiator.PEER))
    assert state.pending_preemption == 0x2
    verified = verifier.verify(state).state
    assert verified.pending_preemption is None
    assert verified.local_key == 0


def test_preempted_key_still_registered() -> None:
    lu = FakeLogicalUnit()
    lu.ignore_preempt = True
    executor, verifier = _setup(lu)
    state = executor.execute(PRState.initial(), Register())
    state = executor.execute(state, Preempt(Initiator.LOCAL))
    with pytest.raises(StateMismatch, match="preempted key 0x1"):
        verifier.verify(state)


def test_daemon_disagreement() -> None:
    lu = FakeLogicalUnit()
    executor, verifier = _setup(lu)
    state = executor.execute(PRState.initial(), Register())
    lu.stale_prkey = 0x9
    with pytest.raises(StateMismatch, match="getprkey should return 0x2") as excinfo:
        verifier.verify(state)
    assert "prkey=0x9" in excinfo.value.output


def test_verify_cleared() -> None:
    lu = FakeLogicalUnit()
    executor, verifier = _setup(lu)
    executor.execute(PRState.initial(), Register())
    with pytest.raises(StateMismatch, match="failed to clear all registrations"):
        verifier.verify_cleared()
    lu.registrations.clear()
    verifier.verify_cleared()


def test_peer_preempt_of_reserved_key_three() -> None:
    lu = FakeLogicalUnit()
    executor, verifier = _setup(lu)
    state = executor.execute(PRState(next_key=0x3), Register())
    state = executor.execute(state, Reserve())
    assert state.local_key == 0x3
    state = executor.execute(state, Preempt(Initiator.PEER))
    assert state.holder is Initiator.PEER
    verification = verifier.verify(state)
    assert 0x3 not in verification.status.registered_keys
    assert verification.status.reservation.key == 0x1


def test_peer_path_disagreement() -> None:
    lu = FakeLogicalUnit()
    executor, verifier = _setup(lu, cross_check=True)
    state = executor.execute(PRState.initial(), Register())
    lu.peer_stale_key = 0x9
    with pytest.raises(StateMismatch, match="peer path reports") as excinfo:
        verifier.verify(state)
    assert "0x9" in str(excinfo.value)
    lu.peer_stale_key = None
    assert verifier.verify(state).state == state
