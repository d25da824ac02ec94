from __future__ import annotations

from typing import Optional, Sequence


class ExerciserError(RuntimeError):
    pass


class ToolInvocationFailure(ExerciserError):
    def __init__(
        self,
        argv: Sequence[str],
        returncode: Optional[int],
        output: str = "",
        reason: str = "",
    ) -> None:
        self.argv = list(argv)
        self.returncode = returncode
        self.output = output
        command = " ".join(self.argv) or "tool output"
        detail = reason or f"exit status {returncode}"
        super().__init__(f"{command} failed: {detail}")


class UnitAttentionError(ToolInvocationFailure):
    pass


class OutputParseError(ToolInvocationFailure):
    def __init__(self, what: str, output: str, argv: Sequence[str] = ()) -> None:
        self.what = what
        super().__init__(argv, 0, output, reason=f"could not parse {what}")


class StateMismatch(ExerciserError):
    def __init__(self, message: str, output: str = "") -> None:
        self.output = output
        super().__init__(message)


class IdentifierMismatch(ExerciserError):
    pass


class BackgroundProcessFault(ExerciserError):
    def __init__(self, name: str, message: str, exit_status: Optional[int] = None) -> None:
        self.name = name
        self.exit_status = exit_status
        super().__init__(f"{name}: {message}")


class RunInterrupted(KeyboardInterrupt):
    """Raised from the SIGTERM handler so a terminated run unwinds like Ctrl+C."""
