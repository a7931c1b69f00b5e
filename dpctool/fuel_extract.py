"""Unpacking of a FUEL archive into a manifest and one file per object."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Optional

from .fuel_format import (
    HEADER_SIZE,
    NO_VALUE,
    VERSION_LOOKUP,
    FormatError,
    ObjectHeader,
    PoolManifest,
    PrimaryHeader,
    class_name_for,
    padded_size,
)
from .fuel_manifest import (
    Block,
    Manifest,
    ObjectDescription,
    Pool,
    PoolObjectEntry,
    ReferenceRange,
)
from .options import AskFunction, Options, confirm_overwrite


def _report(options: Options, message: str) -> None:
    if not options.quiet:
        print(message, file=sys.stderr)


def find_object_path(objects_dir, crc32: int, class_name: str) -> Path:
    """Path for an object file, preferring an existing ``<crc32>_<name>`` file.

    The plain ``<crc32>.<class>`` path is used when it exists or when no
    named variant exists.  More than one named variant is an error.
    """
    directory = Path(objects_dir)
    default = directory / f"{crc32}.{class_name}"
    if default.is_file():
        return default
    named = sorted(directory.glob(f"{crc32}_*.{class_name}"))
    if len(named) > 1:
        raise ValueError(f"More than one named object for crc32: {crc32}")
    return named[0] if named else default


def _stored_size(header: ObjectHeader) -> int:
    return header.compressed_size if header.compressed_size else header.decompressed_size


def _parse_block_objects(
    data: bytes, count: int, block_number: int
) -> list[tuple[ObjectHeader, bytes, bytes]]:
    objects = []
    position = 0
    for _ in range(count):
        header = ObjectHeader.parse(data, position)
        position += ObjectHeader.SIZE
        if header.data_size < header.class_object_size:
            raise FormatError(
                f"object {header.crc32} in block {block_number} has a class object "
                f"larger than its data"
            )
        class_end = position + header.class_object_size
        end = position + header.data_size
        if end > len(data):
            raise FormatError(
                f"object {header.crc32} overruns block {block_number}"
            )
        objects.append((header, data[position:class_end], data[class_end:end]))
        position = end
    return objects


def _parse_pool_objects(data: bytes, count: int) -> list[tuple[ObjectHeader, bytes]]:
    objects = []
    position = 0
    for _ in range(count):
        header = ObjectHeader.parse(data, position)
        start = position + ObjectHeader.SIZE
        end = start + header.data_size
        aligned = position + padded_size(ObjectHeader.SIZE + header.data_size)
        if aligned > len(data):
            raise FormatError(f"pool object {header.crc32} is truncated")
        objects.append((header, data[start:end]))
        position = aligned
    return objects


def extract_dpc(
    input_path,
    output_path,
    options: Options,
    ask: Optional[AskFunction] = None,
) -> Optional[Manifest]:
    """Extract an archive into ``output_path``.

    Writes ``manifest.json``, ``references.txt`` and an ``objects`` directory
    holding each object exactly as stored.  Returns the manifest, or None when
    the user chose to skip an existing output directory.
    """
    data = Path(input_path).read_bytes()
    output = Path(output_path)

    if not confirm_overwrite(output, "directory", options.force, ask):
        return None

    output.mkdir(parents=True, exist_ok=True)

    header = PrimaryHeader.parse(data[:HEADER_SIZE])
    known_version = header.version_string in VERSION_LOOKUP
    if not known_version and not options.unsafe:
        raise FormatError(
            "Invalid version string for fuel. Use -u/--unsafe to bypass this check "
            "and extract the dpc anyway."
        )

    manifest = Manifest()
    manifest.header.version_string = header.version_string
    if not known_version:
        manifest.header.version_minor = header.version_minor
        manifest.header.version_patch = header.version_patch
        if header.block_descriptions:
            manifest.header.block_type = header.block_descriptions[0].block_type
    manifest.header.is_rtc = header.is_not_rtc == 0
    manifest.header.pool_manifest_unused = header.pool_manifest_unused0
    if header.block_sector_padding_size != NO_VALUE:
        manifest.header.incredi_builder_string = header.incredi_builder_string

    objects_dir = output / "objects"
    objects_dir.mkdir(parents=True, exist_ok=True)

    object_headers: dict[int, ObjectHeader] = {}
    compress_flags: dict[int, bool] = {}
    position = HEADER_SIZE
    block_total = len(header.block_descriptions)

    for block_number, description in enumerate(header.block_descriptions, start=1):
        _report(options, f"Processing block {block_number}/{block_total}")
        chunk = data[position : position + description.padded_size]
        position += description.padded_size

        descriptions = []
        for object_header, class_object, body in _parse_block_objects(
            chunk, description.object_count, block_number
        ):
            crc32 = object_header.crc32
            descriptions.append(
                ObjectDescription(crc32, object_header.compressed_size != 0)
            )
            if crc32 in object_headers:
                continue
            if object_header.data_size != (
                object_header.class_object_size + _stored_size(object_header)
            ):
                raise FormatError(f"inconsistent sizes in object {crc32}")

            _report(options, f"Processing {crc32}")
            path = find_object_path(
                objects_dir, crc32, class_name_for(object_header.class_crc32)
            )
            path.write_bytes(object_header.pack() + class_object + body)
            object_headers[crc32] = object_header
            compress_flags[crc32] = object_header.compressed_size != 0

        manifest.blocks.append(Block(description.working_buffer_offset, descriptions))

    if header.pool_manifest_offset != 0:
        chunk = data[position : position + header.pool_manifest_padded_size]
        position += header.pool_manifest_padded_size
        pool_manifest = PoolManifest.parse(chunk)

        if len(pool_manifest.reference_records_indices) < len(pool_manifest.crc32s):
            raise FormatError("pool manifest has fewer record indices than objects")
        manifest.pool = Pool(
            object_entry_indices=list(pool_manifest.objects_crc32s),
            object_entries=[
                PoolObjectEntry(crc32, record_index)
                for crc32, record_index in zip(
                    pool_manifest.crc32s, pool_manifest.reference_records_indices
                )
            ],
            reference_records=[
                ReferenceRange(
                    record.objects_crc32_starting_index, record.objects_crc32_count
                )
                for record in pool_manifest.reference_records
            ],
        )

        _report(options, "Processing pool")
        for pool_header, body in _parse_pool_objects(
            data[position:], len(pool_manifest.objects_crc32s)
        ):
            crc32 = pool_header.crc32
            _report(options, f"Processing {crc32}")
            if crc32 not in object_headers:
                raise FormatError(f"pool object {crc32} does not appear in any block")
            if len(body) != _stored_size(pool_header):
                raise FormatError(f"inconsistent sizes in pool object {crc32}")

            stored = object_headers[crc32]
            updated = ObjectHeader(
                data_size=stored.class_object_size + _stored_size(pool_header),
                class_object_size=stored.class_object_size,
                decompressed_size=pool_header.decompressed_size,
                compressed_size=pool_header.compressed_size,
                class_crc32=stored.class_crc32,
                crc32=stored.crc32,
            )
            path = find_object_path(
                objects_dir, crc32, class_name_for(pool_header.class_crc32)
            )
            with open(path, "r+b") as handle:
                handle.seek(ObjectHeader.SIZE + stored.class_object_size)
                handle.write(body)
                handle.seek(0)
                handle.write(updated.pack())
            compress_flags[crc32] = pool_header.compressed_size != 0

    for block in manifest.blocks:
        for description in block.objects:
            description.compress = compress_flags[description.crc32]

    (output / "manifest.json").write_text(manifest.dumps(), encoding="utf-8")
    (output / "references.txt").write_text("", encoding="utf-8")
    return manifest