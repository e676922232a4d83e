"""Fixed-size byte containers used for hashes, headers and boundaries."""

from __future__ import annotations

import secrets
from collections.abc import Iterable, Iterator
from enum import Enum

from phiminer.common_data import from_big_endian, from_hex, to_big_endian, to_hex

__all__ = ["Align", "FixedHash", "hashes_to_string"]

ELLIPSIS = "\u2026"


class Align(Enum):
    """How data of a different length is placed into a hash."""

    LEFT = "left"
    RIGHT = "right"
    FAIL_IF_DIFFERENT = "fail_if_different"


class FixedHash:
    """A mutable, fixed-size, big-endian byte array optimised for holding hashes."""

    __slots__ = ("_data",)

    def __init__(self, size: int = 32, data: bytes | Iterable[int] | None = None) -> None:
        if size < 0:
            raise ValueError("size must not be negative")
        if data is None:
            self._data = bytearray(size)
            return
        buffer = bytearray(data)
        if len(buffer) != size:
            raise ValueError(f"expected {size} bytes, got {len(buffer)}")
        self._data = buffer

    # ----------------------------------------------------------------- builders

    @classmethod
    def from_bytes(
        cls,
        data: bytes | Iterable[int] | FixedHash,
        size: int = 32,
        align: Align | None = None,
    ) -> FixedHash:
        """Build a hash from bytes or another hash.

        With an exact length the data is copied. Otherwise the result is zero
        filled and, unless ``align`` is FAIL_IF_DIFFERENT, as many bytes as fit
        are copied from the left or the right. The default alignment is LEFT for
        another hash and FAIL_IF_DIFFERENT for plain bytes.
        """
        if align is None:
            align = Align.LEFT if isinstance(data, FixedHash) else Align.FAIL_IF_DIFFERENT
        source = bytes(data)
        if len(source) == size:
            return cls(size, source)
        result = cls(size)
        if align is Align.FAIL_IF_DIFFERENT:
            return result
        count = min(len(source), size)
        if count == 0:
            return result
        if align is Align.RIGHT:
            result._data[size - count :] = source[len(source) - count :]
        else:
            result._data[:count] = source[:count]
        return result

    @classmethod
    def from_hex(cls, text: str, size: int = 32) -> FixedHash:
        """Parse a hex string; bad digits raise BadHexCharacter, a wrong length gives zeros."""
        return cls.from_bytes(from_hex(text, strict=True), size, Align.FAIL_IF_DIFFERENT)

    @classmethod
    def from_int(cls, value: int, size: int = 32) -> FixedHash:
        """Encode an unsigned integer big-endian, dropping bits that do not fit."""
        return cls(size, to_big_endian(value, size))

    @classmethod
    def random(cls, size: int = 32) -> FixedHash:
        """Return a hash filled with random bytes."""
        return cls(size, secrets.token_bytes(size))

    # --------------------------------------------------------------- conversion

    @property
    def size(self) -> int:
        return len(self._data)

    def to_int(self) -> int:
        """Return the hash read as a big-endian unsigned integer."""
        return from_big_endian(self._data)

    def abridged(self) -> str:
        """Return the first four bytes in hex followed by an ellipsis."""
        head = to_hex(self._data[:4]) if len(self._data) >= 4 else ""
        return head + ELLIPSIS

    def hex(self, prefix: bool = False) -> str:
        """Return the whole hash as hex."""
        return to_hex(self._data, 2, prefix)

    def increment(self) -> FixedHash:
        """Add one, treating the bytes as a big-endian number that wraps around."""
        for position in reversed(range(len(self._data))):
            self._data[position] = (self._data[position] + 1) & 0xFF
            if self._data[position]:
                break
        return self

    def clear(self) -> None:
        """Set every byte to zero."""
        self._data[:] = bytes(len(self._data))

    # ------------------------------------------------------------- protocols

    def __bytes__(self) -> bytes:
        return bytes(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __iter__(self) -> Iterator[int]:
        return iter(self._data)

    def __getitem__(self, index: int) -> int:
        return self._data[index]

    def __setitem__(self, index: int, value: int) -> None:
        self._data[index] = value

    def __bool__(self) -> bool:
        return any(self._data)

    def __int__(self) -> int:
        return self.to_int()

    def __str__(self) -> str:
        return self.hex()

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.size}, {self.hex(prefix=True)})"

    def __hash__(self) -> int:
        return hash(bytes(self._data))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, FixedHash):
            return NotImplemented
        return self._data == other._data

    def __lt__(self, other: FixedHash) -> bool:
        if not isinstance(other, FixedHash):
            return NotImplemented
        return bytes(self._data) < bytes(other._data)

    def __le__(self, other: FixedHash) -> bool:
        if not isinstance(other, FixedHash):
            return NotImplemented
        return bytes(self._data) <= bytes(other._data)

    def __gt__(self, other: FixedHash) -> bool:
        if not isinstance(other, FixedHash):
            return NotImplemented
        return bytes(self._data) > bytes(other._data)

    def __ge__(self, other: FixedHash) -> bool:
        if not isinstance(other, FixedHash):
            return NotImplemented
        return bytes(self._data) >= bytes(other._data)

    def _check_peer(self, other: object) -> FixedHash:
        if not isinstance(other, FixedHash):
            raise TypeError("operand must be a FixedHash")
        if other.size != self.size:
            raise ValueError(f"size mismatch: {self.size} and {other.size}")
        return other

    def __ixor__(self, other: FixedHash) -> FixedHash:
        peer = self._check_peer(other)
        self._data[:] = bytes(a ^ b for a, b in zip(self._data, peer._data))
        return self

    def __ior__(self, other: FixedHash) -> FixedHash:
        peer = self._check_peer(other)
        self._data[:] = bytes(a | b for a, b in zip(self._data, peer._data))
        return self

    def __iand__(self, other: FixedHash) -> FixedHash:
        peer = self._check_peer(other)
        self._data[:] = bytes(a & b for a, b in zip(self._data, peer._data))
        return self

    def __xor__(self, other: FixedHash) -> FixedHash:
        result = FixedHash(self.size, self._data)
        result ^= other
        return result

    def __or__(self, other: FixedHash) -> FixedHash:
        result = FixedHash(self.size, self._data)
        result |= other
        return result

    def __and__(self, other: FixedHash) -> FixedHash:
        result = FixedHash(self.size, self._data)
        result &= other
        return result

    def __invert__(self) -> FixedHash:
        return FixedHash(self.size, (~value & 0xFF for value in self._data))


def hashes_to_string(hashes: Iterable[FixedHash]) -> str:
    """Render a list of hashes in abridged form: ``[ a…, b…, ]``."""
    return "[ " + "".join(f"{item.abridged()}, " for item in hashes) + "]"