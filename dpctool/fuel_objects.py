"""Operations on single extracted object files."""

from __future__ import annotations

from pathlib import Path

from .fuel_format import FormatError, ObjectHeader


def _with_added_suffix(path: Path, suffix: str) -> Path:
    if not path.suffix:
        raise ValueError(f"output path {path} has no extension")
    return path.with_name(path.name + suffix)


def split_object(input_path, output_path) -> tuple[Path, Path]:
    """Split an object file into its class object and its data.

    The class object is written to ``<output_path>.header`` and the data
    to ``<output_path>.data``; both paths are returned.  The output path
    must have an extension.
    """
    output = Path(output_path)
    header_path = _with_added_suffix(output, ".header")
    data_path = _with_added_suffix(output, ".data")

    raw = Path(input_path).read_bytes()
    header = ObjectHeader.parse(raw)
    if header.data_size < header.class_object_size:
        raise FormatError(
            f"object {header.crc32} has a class object larger than its data"
        )
    class_end = ObjectHeader.SIZE + header.class_object_size
    end = ObjectHeader.SIZE + header.data_size
    if end > len(raw):
        raise FormatError(f"object file {input_path} is truncated")

    header_path.write_bytes(raw[ObjectHeader.SIZE : class_end])
    data_path.write_bytes(raw[class_end:end])
    return header_path, data_path