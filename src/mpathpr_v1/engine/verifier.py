from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .. import log
from ..errors import StateMismatch
from ..model.state import Initiator, PRState
from ..schemas import DaemonPRView, PRStatus
from ..tools.multipathd import Multipathd
from ..tools.parse import parse_read_keys, parse_read_reservation
from ..tools.persist import PersistTool
from ..utils import format_key


@dataclass(frozen=True)
class Verification:
    state: PRState
    status: PRStatus
    daemon: Optional[DaemonPRView] = None


class Verifier:
    def __init__(
        self,
        local: PersistTool,
        map_name: str,
        daemon: Optional[Multipathd] = None,
        peer: Optional[PersistTool] = None,
    ) -> None:
        self.local = local
        self.map_name = map_name
        self.daemon = daemon
        self.peer = peer

    def verify(self, state: PRState) -> Verification:
        keys_output = self.local.read_keys_output()
        keys = parse_read_keys(keys_output)
        if state.registered and state.local_key not in keys:
            raise StateMismatch(
                f"local initiator should be registered with key "
                f"{format_key(state.local_key)} but it was not found",
                keys_output,
            )

        reservation_output = self.local.read_reservation_output()
        status = PRStatus(
            registered_keys=keys,
            reservation=parse_read_reservation(reservation_output),
        )
        self._check_reservation(state, status, reservation_output)

        if state.pending_preemption is not None:
            if state.pending_preemption in keys:
                raise StateMismatch(
                    f"preempted key {format_key(state.pending_preemption)} should not be "
                    f"registered but was found",
                    keys_output,
                )
            log.info(f"Verified preempted key {format_key(state.pending_preemption)} was removed")
            state = state.preemption_confirmed()

        daemon_view = None
        if self.daemon is not None:
            daemon_view = self._check_daemon(state)
        if self.peer is not None:
            self._check_peer_path(status)

        log.info(f"State verified: {state.describe()}")
        return Verification(state=state, status=status, daemon=daemon_view)

    def _check_reservation(self, state: PRState, status: PRStatus, output: str) -> None:
        if state.holder is None:
            if status.reservation is not None:
                raise StateMismatch(
                    "no reservation should exist but a reservation was found", output
                )
            return
        if status.reservation is None:
            raise StateMismatch(
                f"reservation should exist for {state.holder.value} but none was found", output
            )
        expected_key = state.holder_key()
        if status.reservation.key != expected_key:
            raise StateMismatch(
                f"reservation key {format_key(status.reservation.key)} does not match "
                f"expected {format_key(expected_key)} for {state.holder.value}",
                output,
            )

    def _check_daemon(self, state: PRState) -> DaemonPRView:
        view = self.daemon.pr_view(self.map_name)
        expected_prkey = state.local_key if state.registered else None
        if view.prkey != expected_prkey:
            expected = format_key(expected_prkey) if expected_prkey is not None else "none"
            raise StateMismatch(
                f"multipathd getprkey should return {expected}", view.describe()
            )
        expected_status = "set" if state.registered else "unset"
        if view.prstatus != expected_status:
            raise StateMismatch(
                f"multipathd getprstatus should return '{expected_status}'", view.describe()
            )
        expected_hold = "set" if state.holder is Initiator.LOCAL else "unset"
        if view.prhold != expected_hold:
            raise StateMismatch(
                f"multipathd getprhold should return '{expected_hold}'", view.describe()
            )
        log.info(f"multipathd state verified: {view.describe()}")
        return view

    def _check_peer_path(self, status: PRStatus) -> None:
        peer_status = self.peer.read_status()
        # type descriptions are worded differently by each tool
        if peer_status.to_record() != status.to_record():
            raise StateMismatch(
                f"peer path reports {peer_status.to_record()} but multipath path reports "
                f"{status.to_record()}"
            )

    def verify_cleared(self) -> None:
        output = self.local.read_keys_output()
        if parse_read_keys(output):
            raise StateMismatch(
                "failed to clear all registrations - some keys still registered", output
            )
        log.success("Verified all registrations cleared")
