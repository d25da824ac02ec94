from __future__ import annotations

import time
from enum import Enum
from pathlib import Path
from typing import Any

import orjson
from blake3 import blake3


def stable_hash(data: Any) -> str:
    return blake3(orjson.dumps(data, option=orjson.OPT_SORT_KEYS)).hexdigest()


def now_ts_ns() -> int:
    return time.time_ns()


def read_json(path: Path) -> Any:
    return orjson.loads(path.read_bytes())


def write_jsonl_line(path: Path, data: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("ab") as handle:
        handle.write(orjson.dumps(data, option=orjson.OPT_SORT_KEYS) + b"\n")


def read_jsonl(path: Path) -> list[Any]:
    if not path.exists():
        return []
    return [orjson.loads(line) for line in path.read_bytes().splitlines() if line.strip()]


def format_key(key: int) -> str:
    return f"0x{key:x}"


def parse_key(text: str) -> int:
    return int(text.strip(), 16)


def to_jsonable(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Path):
        return str(value)
    if isinstance(value, (set, frozenset)):
        return sorted(to_jsonable(item) for item in value)
    if isinstance(value, (list, tuple)):
        return [to_jsonable(item) for item in value]
    if isinstance(value, dict):
        return {str(key): to_jsonable(val) for key, val in value.items()}
    return value
