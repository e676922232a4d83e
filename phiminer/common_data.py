"""Hex, big-endian and difficulty helpers shared across the miner."""

from __future__ import annotations

import os
from collections.abc import Iterable, Sequence

__all__ = [
    "DevError",
    "BadHexCharacter",
    "ExternalFunctionFailure",
    "hex_digit",
    "from_hex",
    "to_hex",
    "to_hex_int",
    "to_compact_hex",
    "to_big_endian",
    "from_big_endian",
    "to_compact_big_endian",
    "bytes_required",
    "set_env",
    "get_target_from_diff",
    "get_hashes_to_target",
    "get_scaled_size",
    "get_formatted_hashes",
    "get_formatted_memory",
    "get_formatted_elapsed",
    "pad_left",
    "pad_right",
]

_TARGET_BASE = int("00000000ffff0000000000000000000000000000000000000000000000000000", 16)
_TARGET_MAX = int("ffffffffffffffffffffffffffffffffffffffffffffffffffffffffffffffff", 16)
_HASHES_DIVIDEND = int("ffff000000000000000000000000000000000000000000000000000000000000", 16)

_HASH_SUFFIXES = ("h", "Kh", "Mh", "Gh")
_MEMORY_SUFFIXES = ("B", "KB", "MB", "GB")
_ELAPSED_SUFFIXES = ("ms", "sec")


class DevError(Exception):
    """Base class for all errors raised by the miner core."""

    def __init__(self, message: str = "") -> None:
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message or type(self).__name__


class BadHexCharacter(DevError):
    """A character that is not a hexadecimal digit was met."""

    def __init__(self, symbol: str | None = None) -> None:
        super().__init__("BadHexCharacter")
        self.symbol = symbol


class ExternalFunctionFailure(DevError):
    """A call into an outside facility failed."""

    def __init__(self, function: str) -> None:
        super().__init__(f"Function {function}() failed.")
        self.function = function


def hex_digit(char: str, strict: bool = False) -> int | None:
    """Return the value of one hex digit, or None (raise if strict) when invalid."""
    if len(char) == 1:
        if "0" <= char <= "9":
            return ord(char) - ord("0")
        if "a" <= char <= "f":
            return ord(char) - ord("a") + 10
        if "A" <= char <= "F":
            return ord(char) - ord("A") + 10
    if strict:
        raise BadHexCharacter(char)
    return None


def from_hex(text: str, strict: bool = False) -> bytes:
    """Decode a hex string, with optional "0x" prefix, into bytes.

    An odd number of characters makes the first digit a byte of its own.
    Invalid input yields b"" unless strict, in which case BadHexCharacter is raised.
    """
    start = 2 if text.startswith("0x") else 0
    digits = text[start:]
    out = bytearray()

    def bad() -> bytes:
        if strict:
            raise BadHexCharacter()
        return b""

    if len(text) % 2:
        value = hex_digit(digits[:1])
        if value is None:
            return bad()
        out.append(value)
        digits = digits[1:]

    for high_char, low_char in zip(digits[0::2], digits[1::2]):
        high = hex_digit(high_char)
        low = hex_digit(low_char)
        if high is None or low is None:
            return bad()
        out.append(high * 16 + low)
    return bytes(out)


def to_hex(data: bytes | str | Iterable[int], width: int = 2, prefix: bool = False) -> str:
    """Render bytes as hex pairs; the first element is padded to ``width`` digits."""
    if isinstance(data, str):
        data = data.encode("latin-1")
    parts = [
        f"{value & 0xFF:0{width if position == 0 else 2}x}"
        for position, value in enumerate(data)
    ]
    text = "".join(parts)
    return "0x" + text if prefix else text


def _require_unsigned(value: int) -> None:
    if value < 0:
        raise ValueError("only unsigned values are supported")


def to_hex_int(value: int, prefix: bool = False, digits: int = 16) -> str:
    """Render an unsigned integer as hex zero-padded to at least ``digits`` characters."""
    _require_unsigned(value)
    text = f"{value:0{digits}x}"
    return "0x" + text if prefix else text


def to_compact_hex(value: int, prefix: bool = False) -> str:
    """Render an unsigned integer as hex without padding."""
    _require_unsigned(value)
    text = f"{value:x}"
    return "0x" + text if prefix else text


def to_big_endian(value: int, size: int) -> bytes:
    """Encode ``value`` big-endian into exactly ``size`` bytes, dropping high bits."""
    _require_unsigned(value)
    mask = (1 << (8 * size)) - 1
    return (value & mask).to_bytes(size, "big")


def from_big_endian(data: bytes | Iterable[int]) -> int:
    """Decode big-endian bytes into an integer."""
    return int.from_bytes(bytes(data), "big")


def bytes_required(value: int) -> int:
    """Return the number of bytes needed to hold ``value``; 0 for zero."""
    _require_unsigned(value)
    return (value.bit_length() + 7) // 8


def to_compact_big_endian(value: int, minimum: int = 0) -> bytes:
    """Encode ``value`` in just enough bytes, but at least ``minimum``."""
    return to_big_endian(value, max(minimum, bytes_required(value)))


def set_env(name: str, value: str, override: bool = False) -> bool:
    """Set an environment variable; an existing one is kept unless ``override``."""
    if not override and name in os.environ:
        return True
    try:
        os.environ[name] = value
    except (ValueError, OSError):
        return False
    return True


def get_target_from_diff(diff: float, prefix: bool = True) -> str:
    """Return the 256-bit target for a pool difficulty as 64 hex digits."""
    if diff == 0:
        product = _TARGET_MAX
    else:
        inverse = 1 / diff
        product = _TARGET_BASE * int(inverse)

        text = format(inverse, ".17g")
        offset = text.find(".")
        if offset != -1:
            precision = len(text) - 1 - offset
            decimals = text[offset + 1 :].lstrip("0")
            if decimals and not decimals.isdigit():
                raise ValueError(f"cannot scale difficulty fraction {decimals!r}")
            multiplier = int(decimals) if decimals else 0
            divisor = 10**precision
            product += _TARGET_BASE * multiplier // divisor

    text = f"{product:064x}"
    return "0x" + text if prefix else text


def _parse_big_integer(text: str) -> int:
    if text[:2] in ("0x", "0X"):
        return int(text[2:], 16)
    if len(text) > 1 and text.startswith("0"):
        return int(text[1:], 8)
    return int(text, 10)


def get_hashes_to_target(target: str) -> float:
    """Return the expected number of hashes needed to reach ``target``."""
    return float(_HASHES_DIVIDEND // _parse_big_integer(target))


def get_scaled_size(
    value: float,
    divisor: float,
    precision: int,
    sizes: Sequence[str],
    suffix: bool = True,
) -> str:
    """Divide ``value`` down by ``divisor`` while it exceeds it, and format it."""
    scaled = value
    index = 0
    while scaled > divisor and index < len(sizes) - 1:
        scaled /= divisor
        index += 1
    text = f"{scaled:.{precision}f}"
    return f"{text} {sizes[index]}" if suffix else text


def get_formatted_hashes(rate: float, suffix: bool = True, precision: int = 2) -> str:
    """Format a hash rate with h/Kh/Mh/Gh units."""
    return get_scaled_size(rate, 1000.0, precision, _HASH_SUFFIXES, suffix)


def get_formatted_memory(size: float, suffix: bool = True, precision: int = 2) -> str:
    """Format a memory size with B/KB/MB/GB units."""
    return get_scaled_size(size, 1024.0, precision, _MEMORY_SUFFIXES, suffix)


def get_formatted_elapsed(elapsed: float, suffix: bool = True, precision: int = 2) -> str:
    """Format an elapsed time given in milliseconds."""
    return get_scaled_size(elapsed, 1000.0, precision, _ELAPSED_SUFFIXES, suffix)


def pad_left(value: str, length: int, fill: str) -> str:
    """Pad ``value`` on the left with ``fill`` up to ``length`` characters."""
    return value.rjust(length, fill)


def pad_right(value: str, length: int, fill: str) -> str:
    """Pad ``value`` on the right with ``fill`` up to ``length`` characters."""
    return value.ljust(length, fill)