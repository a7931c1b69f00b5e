"""The JSON manifest describing an extracted archive."""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field
from typing import Any, Optional


@dataclass
class Header:
    """Archive-wide settings needed to rebuild the primary header."""

    version_string: str = ""
    version_minor: Optional[int] = None
    version_patch: Optional[int] = None
    block_type: Optional[int] = None
    is_rtc: bool = False
    pool_manifest_unused: int = 0
    incredi_builder_string: str = ""


@dataclass
class ObjectDescription:
    """An object placed in a block and whether it is stored compressed."""

    crc32: int
    compress: bool


@dataclass
class Block:
    """A block's working buffer offset and its objects in order."""

    offset: int
    objects: list[ObjectDescription] = field(default_factory=list)


@dataclass
class PoolObjectEntry:
    """A distinct pool object and the reference range it belongs to."""

    crc32: int
    reference_record_index: int


@dataclass(frozen=True)
class ReferenceRange:
    """A run of entries in the pool's object index list."""

    object_entries_starting_index: int
    object_entries_count: int


@dataclass
class Pool:
    """Pool contents as recorded in the manifest."""

    object_entry_indices: list[int] = field(default_factory=list)
    object_entries: list[PoolObjectEntry] = field(default_factory=list)
    reference_records: list[ReferenceRange] = field(default_factory=list)


def _require(mapping: Any, key: str, where: str) -> Any:
    if not isinstance(mapping, dict):
        raise ValueError(f"{where}: expected an object")
    if key not in mapping:
        raise ValueError(f"{where}: missing field {key!r}")
    return mapping[key]


def _unsigned(value: Any, bits: int, where: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{where}: expected an integer, got {value!r}")
    if not 0 <= value < (1 << bits):
        raise ValueError(f"{where}: {value} does not fit in {bits} bits")
    return value


def _u32(mapping: Any, key: str, where: str) -> int:
    return _unsigned(_require(mapping, key, where), 32, f"{where}.{key}")


def _optional_u32(mapping: Any, key: str, where: str) -> Optional[int]:
    value = mapping.get(key)
    return None if value is None else _unsigned(value, 32, f"{where}.{key}")


def _bool(mapping: Any, key: str, where: str) -> bool:
    value = _require(mapping, key, where)
    if not isinstance(value, bool):
        raise ValueError(f"{where}.{key}: expected a boolean, got {value!r}")
    return value


def _str(mapping: Any, key: str, where: str) -> str:
    value = _require(mapping, key, where)
    if not isinstance(value, str):
        raise ValueError(f"{where}.{key}: expected a string, got {value!r}")
    return value


def _list(mapping: Any, key: str, where: str) -> list:
    value = _require(mapping, key, where)
    if not isinstance(value, list):
        raise ValueError(f"{where}.{key}: expected a list")
    return value


def _header_from_dict(data: Any) -> Header:
    where = "header"
    _require(data, "version_string", where)
    return Header(
        version_string=_str(data, "version_string", where),
        version_minor=_optional_u32(data, "version_minor", where),
        version_patch=_optional_u32(data, "version_patch", where),
        block_type=_optional_u32(data, "block_type", where),
        is_rtc=_bool(data, "is_rtc", where),
        pool_manifest_unused=_u32(data, "pool_manifest_unused", where),
        incredi_builder_string=_str(data, "incredi_builder_string", where),
    )


def _block_from_dict(data: Any, where: str) -> Block:
    objects = [
        ObjectDescription(
            crc32=_u32(item, "crc32", f"{where}.objects[{number}]"),
            compress=_bool(item, "compress", f"{where}.objects[{number}]"),
        )
        for number, item in enumerate(_list(data, "objects", where))
    ]
    return Block(offset=_u32(data, "offset", where), objects=objects)


def _pool_from_dict(data: Any) -> Pool:
    where = "pool"
    indices = [
        _unsigned(value, 32, f"{where}.object_entry_indices[{number}]")
        for number, value in enumerate(_list(data, "object_entry_indices", where))
    ]
    entries = [
        PoolObjectEntry(
            crc32=_u32(item, "crc32", f"{where}.object_entries[{number}]"),
            reference_record_index=_u32(
                item, "reference_record_index", f"{where}.object_entries[{number}]"
            ),
        )
        for number, item in enumerate(_list(data, "object_entries", where))
    ]
    records = []
    for number, item in enumerate(_list(data, "reference_records", where)):
        record_where = f"{where}.reference_records[{number}]"
        records.append(
            ReferenceRange(
                object_entries_starting_index=_u32(
                    item, "object_entries_starting_index", record_where
                ),
                object_entries_count=_unsigned(
                    _require(item, "object_entries_count", record_where),
                    16,
                    f"{record_where}.object_entries_count",
                ),
            )
        )
    return Pool(indices, entries, records)


@dataclass
class Manifest:
    """Everything needed to rebuild an archive from its extracted objects."""

    header: Header = field(default_factory=Header)
    blocks: list[Block] = field(default_factory=list)
    pool: Optional[Pool] = None

    def to_dict(self) -> dict:
        """Plain-data form; the pool key is left out when there is no pool."""
        data = asdict(self)
        if self.pool is None:
            del data["pool"]
        return data

    @classmethod
    def from_dict(cls, data: Any) -> "Manifest":
        """Build a manifest from plain data, raising ValueError when malformed."""
        header = _header_from_dict(_require(data, "header", "manifest"))
        blocks = [
            _block_from_dict(item, f"blocks[{number}]")
            for number, item in enumerate(_list(data, "blocks", "manifest"))
        ]
        pool_data = data.get("pool")
        pool = None if pool_data is None else _pool_from_dict(pool_data)
        return cls(header, blocks, pool)

    def dumps(self) -> str:
        """Pretty-printed JSON text."""
        return json.dumps(self.to_dict(), indent=2, ensure_ascii=False)

    @classmethod
    def loads(cls, text: str) -> "Manifest":
        """Parse JSON text, raising ValueError when malformed."""
        return cls.from_dict(json.loads(text))