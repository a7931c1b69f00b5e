import io

import pytest

from dpctool.crc32 import (
    asobo_alt_hash,
    asobo_hash,
    build_parser,
    generate_binary,
    generate_names,
    ieee_hash,
    main,
)


class CountingStream(io.StringIO):
    def __init__(self):
        super().__init__()
        self.flushes = 0

    def flush(self):
        self.flushes += 1
        super().flush()


def test_ieee_check_value():
    assert ieee_hash(b"123456789") == 0xCBF43926


def test_empty_input_hashes_to_zero():
    assert asobo_hash(b"") == 0
    assert asobo_alt_hash(b"") == 0


@pytest.mark.parametrize(
    "data, expected",
    [(b"\x01", 0x04C11DB7), (b"\x80", 0x690CE0EE), (b"\xff", 0xB1F740B4)],
)
def test_single_byte_matches_table(data, expected):
    assert asobo_hash(data) == expected
    assert asobo_alt_hash(data) == expected


def test_uppercase_letter_is_lowered():
    assert asobo_hash(b"A") == 0xA864DB20


@pytest.mark.parametrize("function", [asobo_hash, asobo_alt_hash])
def test_asobo_hashes_ignore_case(function):
    assert function(b"Mesh_Z") == function(b"mesh_z")
    assert 0 <= function(b"Some Longer Name") <= 0xFFFFFFFF


def test_ieee_is_case_sensitive():
    assert ieee_hash(b"abc") != ieee_hash(b"ABC")
    assert ieee_hash(b"abc") == ieee_hash(b"abc")


def test_generate_names_trims_and_formats():
    output = io.StringIO()
    generate_names(asobo_hash, ["  foo  \n", "bar\r\n"], output, False, True, False)
    assert output.getvalue() == (
        f'{asobo_hash(b"foo")} "foo"\n{asobo_hash(b"bar")} "bar"\n'
    )


def test_generate_names_literal_keeps_whitespace():
    output = io.StringIO()
    generate_names(ieee_hash, [" x \n"], output, False, True, True)
    assert output.getvalue() == f'{ieee_hash(b" x ")} " x "\n'


def test_generate_names_signed_value_wraps():
    output = io.StringIO()
    generate_names(asobo_hash, ["A"], output, False, False, False)
    number, name = output.getvalue().rstrip("\n").split(" ", 1)
    assert name == '"A"'
    assert int(number) < 0
    assert int(number) & 0xFFFFFFFF == asobo_hash(b"A")


def test_generate_names_flushes_each_line():
    output = CountingStream()
    generate_names(ieee_hash, ["a", "b", "c"], output, True, True, False)
    assert output.flushes == 3


def test_generate_binary_slice():
    data = bytes(range(10))
    output = io.StringIO()
    generate_binary(ieee_hash, data, output, True, 2, 3)
    assert output.getvalue() == f"{ieee_hash(data[2:5])}\n"


def test_generate_binary_defaults_cover_everything():
    data = b"hello world"
    output = io.StringIO()
    generate_binary(ieee_hash, data, output, True)
    assert output.getvalue() == f"{ieee_hash(data)}\n"


def test_generate_binary_offset_only():
    data = b"hello world"
    output = io.StringIO()
    generate_binary(asobo_hash, data, output, True, 6)
    assert output.getvalue() == f"{asobo_hash(b'world')}\n"


def test_generate_binary_out_of_range():
    with pytest.raises(ValueError):
        generate_binary(ieee_hash, b"abc", io.StringIO(), True, 2, 5)
    with pytest.raises(ValueError):
        generate_binary(ieee_hash, b"abc", io.StringIO(), True, 4)


def test_parser_choices_and_flags():
    args = build_parser().parse_args(["-a", "asobo_alt", "-b", "-s", "4", "in"])
    assert (args.algorithm, args.binary, args.offset, args.input) == (
        "asobo_alt",
        True,
        4,
        "in",
    )


def test_main_names_to_file(tmp_path):
    source = tmp_path / "names.txt"
    source.write_text("Mesh_Z\n  Skin_Z \n", encoding="utf-8")
    target = tmp_path / "out.txt"
    assert main(["-a", "ieee", "-U", str(source), "-o", str(target)]) == 0
    assert target.read_text(encoding="utf-8") == (
        f'{ieee_hash(b"Mesh_Z")} "Mesh_Z"\n{ieee_hash(b"Skin_Z")} "Skin_Z"\n'
    )


@pytest.mark.parametrize(
    "argv",
    [
        [],
        ["-a", "ieee", "-b", "-L", "in"],
        ["-a", "ieee", "-s", "3", "in"],
        ["-a", "ieee", "-I", "in"],
        ["-a", "unknown", "in"],
        ["-a", "ieee"],
    ],
)
def test_main_rejects_bad_arguments(argv, capsys):
    with pytest.raises(SystemExit) as excinfo:
        main(argv)
    assert excinfo.value.code == 2