from __future__ import annotations

import random
import signal
import sys
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from . import log
from .config import Settings
from .engine.driver import DriverLoop
from .engine.preflight import check_root, check_tools, verify_device_wwids
from .engine.verifier import Verifier
from .errors import ExerciserError, RunInterrupted
from .journal.journal import Journal
from .model.operations import legal_operations
from .model.state import Initiator, PRState
from .oracle.controller import OracleController, io_probe_launcher
from .oracle.supervisor import SupervisedProcess
from .tools.multipathd import Multipathd
from .tools.persist import PersistTool
from .tools.runner import CommandRunner, LocalRunner, RemoteRunner
from .utils import format_key, parse_key, read_json

app = typer.Typer(help="Randomized SCSI-3 persistent reservation exerciser for multipath devices")
console = Console()

MAP_ARGUMENT = typer.Argument(..., help="multipath device (e.g. mpatha)")
DEVICE_ARGUMENT = typer.Argument(..., help="SCSI device pointing to the same storage (e.g. sdb)")
REMOTE_HOST_OPTION = typer.Option(
    None, "--remote-host", help="Host that sees DEVICE; reached over ssh."
)
CONFIG_OPTION = typer.Option(None, "--config", exists=True, dir_okay=False)
SEED_OPTION = typer.Option(None, "--seed")
MAX_ITERATIONS_OPTION = typer.Option(None, "--max-iterations", min=1)
JOURNAL_OPTION = typer.Option(None, "--journal", dir_okay=False)
NO_INJECTOR_OPTION = typer.Option(False, "--no-injector")
CROSS_CHECK_OPTION = typer.Option(False, "--cross-check-peer-path")
JOURNAL_PATH_ARGUMENT = typer.Argument(..., exists=True, dir_okay=False)
LOCAL_KEY_OPTION = typer.Option("0x0", "--local-key")
HOLDER_OPTION = typer.Option(None, "--holder")

journal_app = typer.Typer(help="Run journal commands")


@app.callback()
def main() -> None:
    pass


def _load_settings(config: Optional[Path]) -> Settings:
    if config is None:
        return Settings()
    data = read_json(config)
    return Settings(**data)


def _peer_runner(
    settings: Settings, local: CommandRunner, remote_host: Optional[str]
) -> CommandRunner:
    if remote_host:
        return RemoteRunner(remote_host, settings.ssh_command)
    return local


def injector_argv(map_name: str, settings: Settings) -> list[str]:
    return [
        sys.executable,
        "-m",
        "mpathpr_v1.faults.path_fault",
        map_name,
        "--cycle-delay",
        str(settings.cycle_delay),
        "--wait-polls",
        str(settings.path_wait_polls),
    ]


def build_driver(
    settings: Settings,
    map_name: str,
    device: str,
    local_runner: CommandRunner,
    peer_runner: CommandRunner,
    journal: Journal,
) -> DriverLoop:
    tool_options = {
        "prout_type": settings.prout_type,
        "retries": settings.unit_attention_retries,
        "retry_delay": settings.unit_attention_delay,
    }
    local = PersistTool.for_map(map_name, local_runner, **tool_options)
    peer = PersistTool.for_device(device, peer_runner, **tool_options)
    daemon = Multipathd(local_runner)
    verifier = Verifier(
        local,
        map_name,
        daemon=daemon,
        peer=peer if settings.cross_check_peer_path else None,
    )
    oracle = OracleController(io_probe_launcher(local.device, settings))
    injector = None
    if settings.start_injector:
        injector = SupervisedProcess(
            "background multipath test",
            injector_argv(map_name, settings),
            stop_timeout=settings.process_stop_timeout,
        )
    return DriverLoop(
        settings,
        map_name,
        local,
        peer,
        verifier,
        oracle,
        injector=injector,
        daemon=daemon,
        journal=journal,
        rng=random.Random(settings.seed),
    )


def _raise_interrupted(signum: int, frame: object) -> None:
    signal.signal(signal.SIGTERM, signal.SIG_IGN)
    raise RunInterrupted()


@app.command("run")
def run_cmd(
    map_name: str = MAP_ARGUMENT,
    device: str = DEVICE_ARGUMENT,
    remote_host: Optional[str] = REMOTE_HOST_OPTION,
    config: Optional[Path] = CONFIG_OPTION,
    seed: Optional[int] = SEED_OPTION,
    max_iterations: Optional[int] = MAX_ITERATIONS_OPTION,
    journal_path: Optional[Path] = JOURNAL_OPTION,
    no_injector: bool = NO_INJECTOR_OPTION,
    cross_check_peer_path: bool = CROSS_CHECK_OPTION,
) -> None:
    settings = _load_settings(config)
    if seed is not None:
        settings = settings.model_copy(update={"seed": seed})
    if settings.seed is None:
        settings = settings.model_copy(update={"seed": random.SystemRandom().randrange(2**32)})
    if max_iterations is not None:
        settings = settings.model_copy(update={"max_iterations": max_iterations})
    if no_injector:
        settings = settings.model_copy(update={"start_injector": False})
    if cross_check_peer_path:
        settings = settings.model_copy(update={"cross_check_peer_path": True})

    where = f"{device} on {remote_host}" if remote_host else device
    log.info(f"Starting mpathpr for devices: {map_name} (multipath) and {where} (SCSI)")
    local_runner = LocalRunner()
    peer_runner = _peer_runner(settings, local_runner, remote_host)
    try:
        check_root()
        check_tools(local_runner, peer_runner)
        wwid = verify_device_wwids(Multipathd(local_runner), map_name, peer_runner, device)
    except ExerciserError as exc:
        log.error(str(exc))
        raise typer.Exit(code=1)

    journal = Journal(journal_path)
    journal.run_start(map_name, device, wwid, settings.seed, remote_host)
    log.info(f"Using seed {settings.seed}")
    driver = build_driver(settings, map_name, device, local_runner, peer_runner, journal)
    previous = signal.signal(signal.SIGTERM, _raise_interrupted)
    try:
        result = driver.run()
    finally:
        signal.signal(signal.SIGTERM, previous)

    table = Table(title="Run Summary")
    table.add_column("Field")
    table.add_column("Value")
    table.add_row("result", result.reason)
    table.add_row("iterations", str(result.iterations))
    table.add_row("seed", str(settings.seed))
    table.add_row("exit code", str(result.exit_code))
    console.print(table)
    if result.exit_code != 0:
        raise typer.Exit(code=result.exit_code)


@app.command("check-wwid")
def check_wwid_cmd(
    map_name: str = MAP_ARGUMENT,
    device: str = DEVICE_ARGUMENT,
    remote_host: Optional[str] = REMOTE_HOST_OPTION,
    config: Optional[Path] = CONFIG_OPTION,
) -> None:
    settings = _load_settings(config)
    local_runner = LocalRunner()
    peer_runner = _peer_runner(settings, local_runner, remote_host)
    try:
        verify_device_wwids(Multipathd(local_runner), map_name, peer_runner, device)
    except ExerciserError as exc:
        log.error(str(exc))
        raise typer.Exit(code=1)


@app.command("legal-ops")
def legal_ops_cmd(
    local_key: str = LOCAL_KEY_OPTION,
    holder: Optional[Initiator] = HOLDER_OPTION,
) -> None:
    try:
        key = parse_key(local_key)
    except ValueError:
        raise typer.BadParameter(f"not a hex key: {local_key}")
    state = PRState(local_key=key, holder=holder)
    if holder is not None and state.holder_key() == 0:
        raise typer.BadParameter("an unregistered local initiator cannot hold the reservation")
    table = Table(title=f"local_key={format_key(key)}, holder={holder.value if holder else 'none'}")
    table.add_column("Operation")
    for op in legal_operations(state):
        table.add_row(op.name)
    console.print(table)
    console.print({"io_expectation": state.io_expectation().value})


@journal_app.command("verify")
def journal_verify_cmd(path: Path = JOURNAL_PATH_ARGUMENT) -> None:
    ok, message = Journal.verify_chain(path)
    console.print({"ok": ok, "message": message})
    if not ok:
        raise typer.Exit(code=1)


app.add_typer(journal_app, name="journal")

if __name__ == "__main__":
    app()
