"""Building a FUEL archive from a manifest and a directory of object files."""

from __future__ import annotations

import struct
import sys
from pathlib import Path
from typing import Optional

from .fuel_format import (
    HEADER_SIZE,
    HEADER_TAIL_OFFSET,
    INCREDI_BUILDER_STRING_SIZE,
    MAX_BLOCK_COUNT,
    NO_VALUE,
    SECTOR_SIZE,
    VERSION_LOOKUP,
    VERSION_STRING_SIZE,
    BlockDescription,
    FormatError,
    ObjectHeader,
    padded_size,
    padding_size,
)
from .fuel_manifest import Manifest
from .fuel_pool import optimize_pool, pool_manifest_bytes
from .options import AskFunction, Options, confirm_overwrite

_HEADER_PART_A = struct.Struct("<7I")
_HEADER_PART_B = struct.Struct("<8I")
_HEADER_PADDING_OFFSET = 0x7C0
_MAX_U32 = 0xFFFFFFFF


def _report(options: Options, message: str) -> None:
    if not options.quiet:
        print(message, file=sys.stderr)


def _sectors(size: int) -> int:
    return (size + SECTOR_SIZE - 1) // SECTOR_SIZE


def _pack(layout: struct.Struct, values: tuple, what: str) -> bytes:
    try:
        return layout.pack(*values)
    except struct.error as exc:
        raise FormatError(f"cannot encode {what}: {exc}") from None


def index_objects(objects_dir) -> dict[int, Path]:
    """Map each object's crc32 to its file in ``objects_dir``.

    The crc32 is the part of the file stem before the first underscore;
    files whose stem does not start with a number are ignored, as are
    directories.  Two files for the same crc32 are an error.
    """
    index: dict[int, Path] = {}
    for path in sorted(Path(objects_dir).iterdir()):
        if not path.is_file():
            continue
        prefix = path.stem.split("_", 1)[0]
        if not (prefix.isascii() and prefix.isdigit()):
            continue
        crc32 = int(prefix)
        if crc32 > _MAX_U32:
            continue
        if crc32 in index:
            raise ValueError(f"Ambiguous files for crc32 = {crc32}")
        index[crc32] = path
    return index


def _read_object(path: Path) -> tuple[ObjectHeader, bytes]:
    raw = path.read_bytes()
    header = ObjectHeader.parse(raw)
    if header.data_size < header.class_object_size:
        raise FormatError(f"object file {path} has a class object larger than its data")
    end = ObjectHeader.SIZE + header.data_size
    if end > len(raw):
        raise FormatError(f"object file {path} is truncated")
    return header, raw[ObjectHeader.SIZE : end]


def create_dpc(
    input_path,
    output_path,
    options: Options,
    no_pool: bool = False,
    unoptimized_pool: bool = False,
    ask: Optional[AskFunction] = None,
) -> Optional[Path]:
    """Build an archive at ``output_path`` from an extracted directory.

    Returns the output path, or None when the user chose to skip an
    existing output file.
    """
    source = Path(input_path)
    output = Path(output_path)
    manifest = Manifest.loads((source / "manifest.json").read_text(encoding="utf-8"))

    if not confirm_overwrite(output, "DPC", options.force, ask):
        return None

    if no_pool:
        manifest.header.pool_manifest_unused = 0
        manifest.pool = None

    index = index_objects(source / "objects")
    header = manifest.header
    version_patch, version_minor, block_type = VERSION_LOOKUP.get(
        header.version_string,
        (
            header.version_patch or 0,
            header.version_minor or 0,
            header.block_type or 0,
        ),
    )
    if version_patch == 0 and not options.unsafe:
        raise FormatError(
            "Invalid version string for fuel. Use -u/--unsafe to bypass this check "
            "and use the invalid string."
        )

    version_bytes = header.version_string.encode("utf-8")
    if len(version_bytes) > VERSION_STRING_SIZE:
        raise FormatError(f"version string longer than {VERSION_STRING_SIZE} bytes")
    incredi_bytes = header.incredi_builder_string.encode("utf-8")
    if len(incredi_bytes) > INCREDI_BUILDER_STRING_SIZE:
        raise FormatError(
            f"incredi builder string longer than {INCREDI_BUILDER_STRING_SIZE} bytes"
        )
    if len(manifest.blocks) > MAX_BLOCK_COUNT:
        raise FormatError(
            f"{len(manifest.blocks)} blocks exceed the maximum of {MAX_BLOCK_COUNT}"
        )

    pool = manifest.pool
    pool_crc32s = {entry.crc32 for entry in pool.object_entries} if pool else set()

    out = bytearray(HEADER_SIZE)
    descriptions: list[BlockDescription] = []
    object_padded_sizes: dict[int, int] = {}
    pool_compress: dict[int, bool] = {}
    block_padding_total = 0
    block_total = len(manifest.blocks)

    for number, block in enumerate(manifest.blocks, start=1):
        _report(options, f"Processing block {number}/{block_total}")
        if not block.objects:
            raise FormatError(f"block {number} has no objects")
        start = len(out)
        for description in block.objects:
            path = index.get(description.crc32)
            if path is None:
                raise FormatError(f"No object for crc32: {description.crc32}")
            object_header, payload = _read_object(path)
            crc32 = object_header.crc32
            _report(options, f"Processing {crc32}")

            if crc32 not in pool_crc32s:
                out += object_header.pack() + payload
                continue

            recorded = pool_compress.setdefault(crc32, description.compress)
            if recorded != description.compress:
                raise ValueError(f"Inconsistent compress values for crc32 {crc32}")
            object_padded_sizes.setdefault(
                crc32,
                padded_size(
                    ObjectHeader.SIZE
                    + object_header.data_size
                    - object_header.class_object_size
                )
                // SECTOR_SIZE,
            )
            class_object = payload[: object_header.class_object_size]
            stub = ObjectHeader(
                data_size=len(class_object),
                class_object_size=len(class_object),
                decompressed_size=0,
                compressed_size=0,
                class_crc32=object_header.class_crc32,
                crc32=crc32,
            )
            out += stub.pack() + class_object

        size = len(out) - start
        descriptions.append(
            BlockDescription(
                block_type=block_type,
                object_count=len(block.objects),
                padded_size=padded_size(size),
                data_size=size,
                working_buffer_offset=block.offset,
                crc32=block.objects[0].crc32,
            )
        )
        block_type = 0
        padding = padding_size(len(out))
        out += bytes(padding)
        block_padding_total += padding

    blocks_padded_size = len(out) - HEADER_SIZE

    pool_manifest_offset = 0
    pool_manifest_size = 0
    pool_padding_total = 0
    max_pool_sectors = 0

    if pool is not None:
        _report(options, "Processing pool")
        if options.optimization and not unoptimized_pool:
            _report(options, "Optimizing the pool")
            pool = optimize_pool(pool)

        pool_manifest_offset = len(out)
        encoded = pool_manifest_bytes(pool, object_padded_sizes, pool_manifest_offset)
        out += encoded
        pool_manifest_size = len(encoded)

        for entry_index in pool.object_entry_indices:
            crc32 = pool.object_entries[entry_index].crc32
            _report(options, f"Processing {crc32}")
            object_header, payload = _read_object(index[crc32])
            max_pool_sectors = max(
                max_pool_sectors, _sectors(object_header.decompressed_size)
            )
            body = payload[object_header.class_object_size :]
            stored = ObjectHeader(
                data_size=len(body),
                class_object_size=0,
                decompressed_size=object_header.decompressed_size,
                compressed_size=object_header.compressed_size,
                class_crc32=object_header.class_crc32,
                crc32=object_header.crc32,
            )
            out += stored.pack() + body
            padding = padding_size(len(out))
            out += b"\xff" * padding
            pool_padding_total += padding

    file_size = len(out)
    if not incredi_bytes:
        block_padding_total = NO_VALUE
        pool_padding_total = NO_VALUE
        file_size = NO_VALUE

    capacity_even = 0
    capacity_odd = 0
    for number, description in enumerate(descriptions):
        capacity = description.padded_size + description.working_buffer_offset
        if number % 2 == 0:
            capacity_even = max(capacity_even, capacity)
        else:
            capacity_odd = max(capacity_odd, capacity)

    out[: len(version_bytes)] = version_bytes

    part_a = _pack(
        _HEADER_PART_A,
        (
            0 if header.is_rtc else 1,
            len(descriptions),
            capacity_even,
            capacity_odd,
            blocks_padded_size,
            version_patch,
            version_minor,
        ),
        "primary header",
    )
    position = VERSION_STRING_SIZE
    out[position : position + len(part_a)] = part_a
    position += len(part_a)
    for description in descriptions:
        packed = description.pack()
        out[position : position + len(packed)] = packed
        position += len(packed)

    part_b = _pack(
        _HEADER_PART_B,
        (
            _sectors(pool_manifest_size),
            _sectors(pool_manifest_offset),
            header.pool_manifest_unused,
            header.pool_manifest_unused,
            max_pool_sectors,
            block_padding_total,
            pool_padding_total,
            file_size,
        ),
        "primary header tail",
    )
    position = HEADER_TAIL_OFFSET
    out[position : position + len(part_b)] = part_b
    position += len(part_b)

    tail = incredi_bytes or b"\xff" * INCREDI_BUILDER_STRING_SIZE
    out[position : position + len(tail)] = tail
    out[_HEADER_PADDING_OFFSET:HEADER_SIZE] = b"\xff" * (
        HEADER_SIZE - _HEADER_PADDING_OFFSET
    )

    output.write_bytes(bytes(out))
    return output