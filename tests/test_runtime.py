import pytest

from splcompiler.runtime import (
    SplPanic,
    get_argc,
    get_argv,
    panic,
    round_up,
    save_command_line,
    str_hash,
)


def test_hash_of_empty_string_is_offset_basis():
    assert str_hash("") == 14695981039346656037


def test_hash_known_value():
    assert str_hash("a") == 0xAF63DC4C8601EC8C


def test_hash_str_and_bytes_agree():
    assert str_hash("hello") == str_hash(b"hello")


def test_hash_fits_in_64_bits_and_distinguishes():
    values = {str_hash(text) for text in ["a", "b", "ab", "ba", "\u00e9"]}
    assert len(values) == 5
    assert all(0 <= v < 2**64 for v in values)


@pytest.mark.parametrize("size", [0, 1, 7, 8, 9, 4095, 4096, 4097, 100000])
@pytest.mark.parametrize("increment", [8, 4096])
def test_round_up_invariants(size, increment):
    result = round_up(size, increment)
    assert result % increment == 0
    assert size <= result < size + increment


def test_round_up_keeps_multiples():
    assert round_up(4096, 4096) == 4096


def test_command_line_arguments():
    save_command_line(["prog", "first", "second"])
    assert get_argc() == 3
    assert [get_argv(i) for i in range(get_argc())] == ["prog", "first", "second"]


@pytest.mark.parametrize("index", [-1, 2])
def test_argv_out_of_range_panics(index):
    save_command_line(["prog", "x"])
    with pytest.raises(SplPanic) as info:
        get_argv(index)
    assert info.value.message == "command-line argument index out of range"


def test_panic_raises_with_message():
    with pytest.raises(SplPanic) as info:
        panic("bad thing")
    assert str(info.value) == "*** Exception: bad thing"