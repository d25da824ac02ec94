from __future__ import annotations

from rich.console import Console
from rich.markup import escape

console = Console(highlight=False)

_LEVELS = {
    "info": ("INFO", "blue"),
    "success": ("SUCCESS", "green"),
    "warning": ("WARNING", "bold yellow"),
    "error": ("ERROR", "red"),
}


def _emit(level: str, message: str) -> None:
    tag, style = _LEVELS[level]
    console.print(f"[{style}]\\[{tag}][/{style}] {escape(message)}")


def info(message: str) -> None:
    _emit("info", message)


def success(message: str) -> None:
    _emit("success", message)


def warning(message: str) -> None:
    _emit("warning", message)


def error(message: str) -> None:
    _emit("error", message)


def raw(text: str) -> None:
    console.print(escape(text.rstrip("\n")))


def progress(mark: str) -> None:
    console.print(mark, end="")
