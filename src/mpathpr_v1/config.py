from __future__ import annotations

from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

WRITE_EXCLUSIVE_REGISTRANTS_ONLY = 5


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="MPATHPR_")

    peer_key: int = 0x1
    first_key: int = 0x2
    prout_type: int = WRITE_EXCLUSIVE_REGISTRANTS_ONLY
    unit_attention_retries: int = 3
    unit_attention_delay: float = 0.1
    io_check_interval: float = 5.0
    iteration_pause: float = 1.0
    io_interval: float = 0.1
    oracle_start_grace: float = 0.1
    process_stop_timeout: float = 30.0
    cycle_delay: float = 2.0
    path_wait_polls: int = 30
    seed: Optional[int] = None
    max_iterations: Optional[int] = None
    cross_check_peer_path: bool = False
    start_injector: bool = True
    ssh_command: List[str] = Field(default_factory=lambda: ["ssh", "-o", "BatchMode=yes"])
