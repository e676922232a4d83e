import os

import pytest

from phiminer.common_data import (
    BadHexCharacter,
    DevError,
    ExternalFunctionFailure,
    bytes_required,
    from_big_endian,
    from_hex,
    get_formatted_elapsed,
    get_formatted_hashes,
    get_formatted_memory,
    get_hashes_to_target,
    get_scaled_size,
    get_target_from_diff,
    hex_digit,
    pad_left,
    pad_right,
    set_env,
    to_big_endian,
    to_compact_big_endian,
    to_compact_hex,
    to_hex,
    to_hex_int,
)

BASE_TARGET = "0x00000000ffff0000000000000000000000000000000000000000000000000000"
MAX_TARGET = "0xffffffffffffffffffffffffffffffffffffffffffffffffffffffffffffffff"


@pytest.mark.parametrize("char,expected", [("A", 10), ("f", 15), ("5", 5), ("0", 0)])
def test_hex_digit_values(char, expected):
    assert hex_digit(char) == expected


def test_hex_digit_invalid():
    assert hex_digit("g") is None
    with pytest.raises(BadHexCharacter) as info:
        hex_digit("g", strict=True)
    assert info.value.symbol == "g"


def test_from_hex_documented_example():
    assert from_hex("41626261") == b"Abba"


def test_to_hex_documented_example():
    assert to_hex(b"A\x69") == "4169"
    assert to_hex("A\x69", prefix=True) == "0x4169"


def test_hex_round_trip_with_prefix():
    data = bytes(range(256))
    assert from_hex(to_hex(data, prefix=True)) == data


def test_from_hex_odd_length_first_digit_alone():
    assert from_hex("123") == bytes([0x1, 0x23])
    assert from_hex("0x123") == from_hex("123")


def test_from_hex_invalid_lenient_and_strict():
    assert from_hex("12zz") == b""
    with pytest.raises(BadHexCharacter):
        from_hex("12zz", strict=True)
    with pytest.raises(DevError):
        from_hex("z", strict=True)


def test_to_hex_first_width():
    assert to_hex(b"\x01\x02", width=4) == "00010" + "2"
    assert to_hex(b"") == ""


def test_to_hex_int_padding_and_prefix():
    assert len(to_hex_int(1)) == 16
    assert to_hex_int(0xABC, prefix=True, digits=8) == "0x" + "abc".rjust(8, "0")
    assert int(to_hex_int(2**64 - 1), 16) == 2**64 - 1
    with pytest.raises(ValueError):
        to_hex_int(-1)


def test_to_compact_hex():
    assert to_compact_hex(0xDEAD) == "dead"
    assert to_compact_hex(0, prefix=True) == "0x0"


def test_big_endian_round_trip():
    value = 0x0102030405
    encoded = to_big_endian(value, 32)
    assert len(encoded) == 32
    assert from_big_endian(encoded) == value


def test_big_endian_truncates_high_bits():
    assert to_big_endian(0x1234, 1) == b"\x34"


def test_compact_big_endian_and_bytes_required():
    assert bytes_required(0) == 0
    assert to_compact_big_endian(0) == b""
    assert to_compact_big_endian(0, 3) == b"\x00\x00\x00"
    value = 0x10000
    assert bytes_required(value) == len(to_compact_big_endian(value))
    assert from_big_endian(to_compact_big_endian(value)) == value


def test_set_env_respects_override(monkeypatch):
    name = "PHIMINER_TEST_VARIABLE"
    monkeypatch.setenv(name, "orig")
    assert set_env(name, "new") is True
    assert os.environ[name] == "orig"
    assert set_env(name, "new", override=True) is True
    assert os.environ[name] == "new"


def test_target_from_diff_zero_and_one():
    assert get_target_from_diff(0) == MAX_TARGET
    assert get_target_from_diff(1) == BASE_TARGET
    assert get_target_from_diff(1, prefix=False) == BASE_TARGET[2:]


def test_target_from_diff_half_doubles_target():
    assert int(get_target_from_diff(0.5), 16) == 2 * int(BASE_TARGET, 16)


def test_target_from_diff_two_halves_target():
    half = int(get_target_from_diff(2), 16)
    assert half == int(BASE_TARGET, 16) // 2
    assert len(get_target_from_diff(2)) == 66


def test_hashes_to_target():
    assert get_hashes_to_target(BASE_TARGET) == 4294967296.0
    assert get_hashes_to_target(MAX_TARGET) == 0.0
    with pytest.raises(ZeroDivisionError):
        get_hashes_to_target("0x0")


def test_formatted_hashes():
    assert get_formatted_hashes(1500) == "1.50 Kh"
    assert get_formatted_hashes(500) == "500.00 h"
    assert get_formatted_hashes(500, suffix=False, precision=0) == "500"


def test_formatted_memory_not_scaled_at_divisor():
    assert get_formatted_memory(1024) == "1024.00 B"


def test_scaled_size_stops_at_last_suffix():
    result = get_scaled_size(10.0**15, 1000.0, 0, ["a", "b"])
    assert result.endswith(" b")
    assert get_formatted_elapsed(10.0**9).endswith("sec")


def test_padding():
    assert pad_left("7", 3, "0") == "007"
    assert pad_right("ab", 4, ".") == "ab.."
    assert pad_left("long", 2, "x") == "long"


def test_error_messages():
    assert str(BadHexCharacter()) == "BadHexCharacter"
    assert str(ExternalFunctionFailure("open")) == "Function open() failed."
    assert str(DevError()) == "DevError"