from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from pydantic import BaseModel, ValidationError

from ..model.operations import Operation
from ..model.state import PRState
from ..schemas import PRStatus
from ..utils import now_ts_ns, read_jsonl, stable_hash, to_jsonable, write_jsonl_line

RUN_START = "RUN_START"
OPERATION = "OPERATION"
VERIFIED = "VERIFIED"
RUN_END = "RUN_END"


class JournalEntry(BaseModel):
    seq: int
    ts: int
    type: str
    payload: Dict[str, Any]
    prev_hash: str
    hash: str = ""

    def digest(self) -> str:
        return stable_hash(self.model_dump(exclude={"hash"}))


class Journal:
    """Append-only JSONL record of a run; each entry hashes its predecessor.

    A journal without a path records nothing. Opening an existing file
    continues its chain.
    """

    def __init__(self, path: Optional[Path]) -> None:
        self.path = path
        self.head = ""
        self.next_seq = 0
        if path is not None:
            existing = read_jsonl(path)
            if existing:
                tail = JournalEntry(**existing[-1])
                self.head = tail.hash
                self.next_seq = tail.seq + 1

    def append(self, event_type: str, payload: Dict[str, Any]) -> str:
        if self.path is None:
            return ""
        entry = JournalEntry(
            seq=self.next_seq,
            ts=now_ts_ns(),
            type=event_type,
            payload=to_jsonable(payload),
            prev_hash=self.head,
        )
        entry.hash = entry.digest()
        write_jsonl_line(self.path, entry.model_dump())
        self.head = entry.hash
        self.next_seq += 1
        return entry.hash

    def run_start(
        self, map_name: str, device: str, wwid: str, seed: int, host: Optional[str]
    ) -> str:
        return self.append(
            RUN_START,
            {"map": map_name, "device": device, "wwid": wwid, "seed": seed, "remote_host": host},
        )

    def operation(self, iteration: int, op: Operation, before: PRState, after: PRState) -> str:
        return self.append(
            OPERATION,
            {
                "iteration": iteration,
                "operation": op.name,
                "before": before.to_record(),
                "after": after.to_record(),
            },
        )

    def verified(self, iteration: int, state: PRState, status: PRStatus) -> str:
        return self.append(
            VERIFIED,
            {"iteration": iteration, "state": state.to_record(), "status": status.to_record()},
        )

    def run_end(self, reason: str, exit_code: int, iterations: int) -> str:
        return self.append(
            RUN_END, {"reason": reason, "exit_code": exit_code, "iterations": iterations}
        )

    @staticmethod
    def verify_chain(path: Path) -> Tuple[bool, str]:
        expected_prev = ""
        raw_entries = read_jsonl(path)
        for position, raw in enumerate(raw_entries):
            try:
                entry = JournalEntry(**raw)
            except ValidationError:
                return False, f"malformed entry at {position}"
            if entry.seq != position:
                return False, f"sequence gap at {position}"
            if entry.prev_hash != expected_prev:
                return False, f"prev_hash mismatch at {position}"
            if entry.digest() != entry.hash:
                return False, f"hash mismatch at {position}"
            expected_prev = entry.hash
        return True, f"ok ({len(raw_entries)} entries)"
