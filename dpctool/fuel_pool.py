"""Building the pool manifest of an archive from the manifest's pool."""

from __future__ import annotations

import struct
from collections import Counter
from typing import Mapping

from .fuel_format import (
    SECTOR_SIZE,
    PoolManifestHeader,
    ReferenceRecord,
    padded_size,
    padding_size,
)
from .fuel_manifest import Pool, PoolObjectEntry


def optimize_pool(pool: Pool) -> Pool:
    """Return a pool whose duplicate reference ranges are merged.

    Ranges keep the order of their first appearance and entries are
    renumbered (1-based) to point at the merged ranges.
    """
    unique = list(dict.fromkeys(pool.reference_records))
    positions = {record: number for number, record in enumerate(unique)}
    entries = []
    for entry in pool.object_entries:
        index = entry.reference_record_index
        if not 1 <= index <= len(pool.reference_records):
            raise ValueError(
                f"object {entry.crc32} refers to missing reference record {index}"
            )
        record = pool.reference_records[index - 1]
        entries.append(PoolObjectEntry(entry.crc32, positions[record] + 1))
    return Pool(list(pool.object_entry_indices), entries, unique)


def reference_counts(pool: Pool) -> dict[int, int]:
    """How many times each pool object's crc32 is listed in the index list."""
    try:
        return dict(
            Counter(pool.object_entries[i].crc32 for i in pool.object_entry_indices)
        )
    except IndexError:
        raise ValueError("pool index list refers to a missing object entry") from None


def _u32_array(values: list[int], what: str) -> bytes:
    try:
        return struct.pack(f"<I{len(values)}I", len(values), *values)
    except struct.error as exc:
        raise ValueError(f"cannot encode {what}: {exc}") from None


def pool_manifest_bytes(pool: Pool, padded_sizes: Mapping[int, int], offset: int) -> bytes:
    """Encode the pool manifest to be written at file position ``offset``.

    ``padded_sizes`` maps each pool object's crc32 to its size in sectors.
    The result includes the terminal record and 0xFF padding up to the
    next sector boundary.
    """
    counts = reference_counts(pool)

    def sectors(crc32: int) -> int:
        try:
            return padded_sizes[crc32]
        except KeyError:
            raise ValueError(f"no padded size for pool object {crc32}") from None

    def count_for(crc32: int) -> int:
        try:
            return counts[crc32]
        except KeyError:
            raise ValueError(f"pool object {crc32} is never referenced") from None

    entry_sectors = [sectors(entry.crc32) for entry in pool.object_entries]

    out = bytearray(
        PoolManifestHeader(
            objects_crc32_count_sum=sum(
                record.object_entries_count for record in pool.reference_records
            )
        ).pack()
    )
    out += _u32_array(list(pool.object_entry_indices), "object entry indices")
    out += _u32_array([entry.crc32 for entry in pool.object_entries], "crc32s")
    out += _u32_array(
        [count_for(entry.crc32) for entry in pool.object_entries], "reference counts"
    )
    out += _u32_array(entry_sectors, "object padded sizes")
    out += _u32_array(
        [entry.reference_record_index for entry in pool.object_entries],
        "reference record indices",
    )

    position = offset + len(out)
    end_of_manifest = padded_size(
        position + ReferenceRecord.SIZE * len(pool.reference_records) + ReferenceRecord.SIZE
    )
    listed_sectors = [entry_sectors[i] for i in pool.object_entry_indices]

    records = bytearray()
    for record in pool.reference_records:
        start = record.object_entries_starting_index
        stop = start + record.object_entries_count
        if stop > len(listed_sectors):
            raise ValueError(
                f"reference range {start}..{stop} is past the end of the index list"
            )
        start_chunk = end_of_manifest // SECTOR_SIZE + sum(listed_sectors[:start])
        end_chunk = start_chunk + sum(listed_sectors[start:stop])
        records += ReferenceRecord(
            start_chunk_index=start_chunk,
            end_chunk_index=end_chunk,
            objects_crc32_starting_index=start,
            placeholder_dpc_index=0,
            objects_crc32_count=record.object_entries_count,
        ).pack()

    out += struct.pack("<I", len(pool.reference_records))
    out += records
    out += ReferenceRecord(0, 0, 0, 0, 0).pack()
    out += b"\xff" * padding_size(offset + len(out))
    return bytes(out)