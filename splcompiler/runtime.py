"""Runtime support for compiled programs: strings, arguments and errors."""

from __future__ import annotations

from typing import Iterable

MAX_STRUCTURED_TAG = (1 << 32) - 1
UNBOXED_ARRAY_TAG = MAX_STRUCTURED_TAG + 1
BOXED_ARRAY_TAG = MAX_STRUCTURED_TAG + 2

_FNV_OFFSET_BASIS = 14695981039346656037
_FNV_PRIME = 1099511628211
_MASK64 = (1 << 64) - 1


class SplPanic(Exception):
    """An unrecoverable runtime error of a compiled program."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return f"*** Exception: {self.message}"


def str_hash(data: str | bytes) -> int:
    """64-bit FNV-1a hash of a string's bytes.

    Bytes are taken as signed characters, so values of 0x80 and above are
    sign-extended before being mixed in.
    """
    if isinstance(data, str):
        data = data.encode("utf-8")
    result = _FNV_OFFSET_BASIS
    for byte in data:
        signed = byte - 256 if byte >= 128 else byte
        result ^= signed & _MASK64
        result = (result * _FNV_PRIME) & _MASK64
    return result


def round_up(size: int, increment: int) -> int:
    """Round ``size`` up to the next multiple of ``increment``."""
    remainder = size % increment
    if remainder:
        return size - remainder + increment
    return size


class _CommandLine:
    def __init__(self) -> None:
        self.args: list[str] = []


_command_line = _CommandLine()


def save_command_line(args: Iterable[str]) -> None:
    """Record the program's command-line arguments."""
    _command_line.args = list(args)


def get_argc() -> int:
    return len(_command_line.args)


def get_argv(index: int) -> str:
    if not 0 <= index < len(_command_line.args):
        raise SplPanic("command-line argument index out of range")
    return _command_line.args[index]


def panic(message: str) -> None:
    """Abort the program with a runtime error."""
    raise SplPanic(message)