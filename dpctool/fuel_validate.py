"""Structural validation of a FUEL archive, reported as JSON."""

from __future__ import annotations

import json
from dataclasses import asdict
from pathlib import Path
from typing import Optional

from .fuel_format import (
    HEADER_SIZE,
    FormatError,
    ObjectHeader,
    PoolManifest,
    PrimaryHeader,
    padded_size,
    padding_size,
)
from .options import AskFunction, Options, confirm_overwrite


def _check_sizes(header: ObjectHeader, where: str) -> None:
    stored = header.compressed_size if header.compressed_size else header.decompressed_size
    if header.data_size != header.class_object_size + stored:
        raise FormatError(f"inconsistent sizes in {where} {header.crc32}")


def _advance(data: bytes, position: int, what: str) -> int:
    if position > len(data):
        raise FormatError(f"{what} runs past the end of the file")
    return position


def validate_dpc(data) -> dict:
    """Walk every structure of an archive and describe it as plain data.

    Raises FormatError when any part is truncated, inconsistent, or when
    bytes remain after the last structure.
    """
    data = bytes(data)
    header = PrimaryHeader.parse(data)
    position = _advance(data, HEADER_SIZE, "primary header")

    blocks = []
    for number, description in enumerate(header.block_descriptions, start=1):
        objects = []
        for _ in range(description.object_count):
            object_header = ObjectHeader.parse(data, position)
            _check_sizes(object_header, f"object in block {number}:")
            position = _advance(
                data,
                position + ObjectHeader.SIZE + object_header.data_size,
                f"object {object_header.crc32} in block {number}",
            )
            objects.append(asdict(object_header))
        position = _advance(
            data,
            position + padding_size(description.data_size),
            f"padding of block {number}",
        )
        blocks.append({"objects": objects})

    result: dict = {"primary_header": asdict(header), "blocks": blocks}

    if header.pool_manifest_offset != 0:
        manifest = PoolManifest.parse(data, position)
        position = _advance(
            data, padded_size(position + manifest.byte_size), "pool manifest"
        )
        objects = []
        for _ in range(len(manifest.objects_crc32s)):
            object_header = ObjectHeader.parse(data, position)
            _check_sizes(object_header, "pool object")
            position = _advance(
                data,
                position + padded_size(object_header.data_size + ObjectHeader.SIZE),
                f"pool object {object_header.crc32}",
            )
            objects.append(asdict(object_header))
        position = _advance(data, padded_size(position), "pool")
        result["pool"] = {"manifest": asdict(manifest), "objects": objects}

    if position != len(data):
        raise FormatError(
            f"{len(data) - position} unexpected bytes after the last structure"
        )
    return result


def write_validation(
    input_path,
    output_path,
    options: Options,
    ask: Optional[AskFunction] = None,
) -> Optional[dict]:
    """Validate an archive and write the description as pretty JSON.

    Returns the description, or None when the user chose to skip an
    existing output file.
    """
    data = Path(input_path).read_bytes()
    output = Path(output_path)
    if not confirm_overwrite(output, "json", options.force, ask):
        return None
    description = validate_dpc(data)
    output.write_text(json.dumps(description, indent=2), encoding="utf-8")
    return description