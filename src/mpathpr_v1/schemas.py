from __future__ import annotations

from typing import Any, Dict, FrozenSet, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from .utils import format_key


class Reservation(BaseModel):
    model_config = ConfigDict(frozen=True)

    key: int
    type_description: str = ""


class PRStatus(BaseModel):
    model_config = ConfigDict(frozen=True)

    registered_keys: FrozenSet[int] = Field(default_factory=frozenset)
    reservation: Optional[Reservation] = None

    def to_record(self) -> Dict[str, Any]:
        return {
            "registered_keys": [format_key(key) for key in sorted(self.registered_keys)],
            "reservation": (
                format_key(self.reservation.key) if self.reservation is not None else None
            ),
        }


class DaemonPRView(BaseModel):
    model_config = ConfigDict(frozen=True)

    prkey: Optional[int] = None
    prstatus: Literal["set", "unset"] = "unset"
    prhold: Literal["set", "unset"] = "unset"

    def describe(self) -> str:
        prkey = format_key(self.prkey) if self.prkey is not None else "none"
        return f"prkey={prkey}, prstatus={self.prstatus}, prhold={self.prhold}"
