"""CRC32 name hashing used by the archive format, with a small command line."""

from __future__ import annotations

import argparse
import sys
import zlib
from typing import Callable, Iterable, Optional, Sequence, TextIO

HashFunction = Callable[[bytes], int]

_POLYNOMIAL = 0x04C11DB7
_MASK = 0xFFFFFFFF


def _build_table() -> tuple[int, ...]:
    table = []
    for index in range(256):
        value = index << 24
        for _ in range(8):
            if value & 0x80000000:
                value = ((value << 1) ^ _POLYNOMIAL) & _MASK
            else:
                value = (value << 1) & _MASK
        table.append(value)
    return tuple(table)


_TABLE = _build_table()


def asobo_hash(data: bytes) -> int:
    """Case-insensitive name hash used for object identifiers."""
    value = 0
    for byte in data.lower():
        value = (value >> 8) ^ _TABLE[(byte ^ value) & 0xFF]
    return value


def asobo_alt_hash(data: bytes) -> int:
    """Alternative case-insensitive, most-significant-byte-first name hash."""
    value = 0
    for byte in data.lower():
        value = ((value << 8) & _MASK) ^ _TABLE[(byte ^ (value >> 24)) & 0xFF]
    return value


def ieee_hash(data: bytes) -> int:
    """Standard IEEE CRC32."""
    return zlib.crc32(data) & _MASK


ALGORITHMS: dict[str, HashFunction] = {
    "asobo": asobo_hash,
    "asobo_alt": asobo_alt_hash,
    "ieee": ieee_hash,
}


def _format_hash(value: int, unsigned: bool) -> str:
    if unsigned or value < 0x80000000:
        return str(value)
    return str(value - 0x100000000)


def _strip_line_ending(line: str) -> str:
    if line.endswith("\n"):
        line = line[:-1]
        if line.endswith("\r"):
            line = line[:-1]
    return line


def generate_names(
    hash_function: HashFunction,
    lines: Iterable[str],
    output: TextIO,
    flush: bool,
    unsigned: bool,
    literal: bool,
) -> None:
    """Write one ``<hash> "<name>"`` line for every input line."""
    for line in lines:
        name = _strip_line_ending(line)
        if not literal:
            name = name.strip()
        value = hash_function(name.encode("utf-8"))
        output.write(f'{_format_hash(value, unsigned)} "{name}"\n')
        if flush:
            output.flush()


def generate_binary(
    hash_function: HashFunction,
    data: bytes,
    output: TextIO,
    unsigned: bool,
    offset: Optional[int] = None,
    length: Optional[int] = None,
) -> None:
    """Hash a slice of ``data`` and write the value on one line."""
    start = 0 if offset is None else offset
    if start > len(data):
        raise ValueError(f"offset {start} is past the end of {len(data)} bytes")
    end = start + (len(data) - start if length is None else length)
    if end > len(data):
        raise ValueError(f"range {start}..{end} is past the end of {len(data)} bytes")
    value = hash_function(data[start:end])
    output.write(f"{_format_hash(value, unsigned)}\n")


def _non_negative(text: str) -> int:
    try:
        value = int(text)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid number: {text!r}") from None
    if value < 0:
        raise argparse.ArgumentTypeError(f"must not be negative: {text!r}")
    return value


def build_parser() -> argparse.ArgumentParser:
    """Return the argument parser for the crc32 command."""
    parser = argparse.ArgumentParser(prog="crc32", description="generate name files")
    parser.add_argument("input", nargs="?", help="Input file")
    parser.add_argument("-o", "--output", help="Output file")
    parser.add_argument(
        "-b", "--binary", action="store_true", help="Treat the input as a binary blob"
    )
    parser.add_argument(
        "-s", "--offset", type=_non_negative, help="Position to start hashing at"
    )
    parser.add_argument(
        "-H", "--length", type=_non_negative, help="Length of data to hash"
    )
    parser.add_argument(
        "-I",
        "--interactive",
        action="store_true",
        help="Run the command in interactive mode",
    )
    parser.add_argument(
        "-L", "--literal", action="store_true", help="Don't trim whitespace"
    )
    parser.add_argument(
        "-a",
        "--algorithm",
        required=True,
        choices=sorted(ALGORITHMS),
        help="The crc32 algorithm to use",
    )
    parser.add_argument(
        "-U", "--unsigned", action="store_true", help="Use unsigned values"
    )
    return parser


def _check_arguments(parser: argparse.ArgumentParser, args: argparse.Namespace) -> None:
    if args.binary and args.literal:
        parser.error("--binary cannot be used with --literal")
    if (args.offset is not None or args.length is not None) and not args.binary:
        parser.error("--offset and --length require --binary")
    if args.interactive and (args.input is not None or args.output is not None):
        parser.error("--interactive cannot be used with input or output paths")
    if not args.interactive and args.input is None:
        parser.error("an input path is required unless --interactive is given")


def _run(args: argparse.Namespace, source, output: TextIO, interactive: bool) -> None:
    hash_function = ALGORITHMS[args.algorithm]
    if args.binary:
        data = source.read()
        # Binary values are printed unsigned whenever output is interactive.
        generate_binary(
            hash_function, data, output, interactive, args.offset, args.length
        )
    else:
        generate_names(
            hash_function, source, output, interactive, args.unsigned, args.literal
        )


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Run the crc32 command."""
    parser = build_parser()
    argv = list(sys.argv[1:] if argv is None else argv)
    if not argv:
        parser.print_help(sys.stderr)
        raise SystemExit(2)
    args = parser.parse_args(argv)
    _check_arguments(parser, args)

    if args.interactive:
        source = sys.stdin.buffer if args.binary else sys.stdin
        _run(args, source, sys.stdout, True)
        return 0

    if args.binary:
        input_handle = open(args.input, "rb")
    else:
        input_handle = open(args.input, "r", encoding="utf-8", newline="")
    with input_handle:
        if args.output is None:
            _run(args, input_handle, sys.stdout, True)
        else:
            with open(args.output, "w", encoding="utf-8", newline="") as output:
                _run(args, input_handle, output, False)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())