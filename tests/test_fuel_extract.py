import struct

import pytest

from dpctool.fuel_extract import extract_dpc, find_object_path
from dpctool.fuel_format import (
    DEFAULT_VERSION,
    NO_VALUE,
    BlockDescription,
    FormatError,
    ObjectHeader,
    padded_size,
)
from dpctool.fuel_manifest import Manifest, Pool, PoolObjectEntry, ReferenceRange
from dpctool.fuel_pool import pool_manifest_bytes
from dpctool.options import Options, OverwriteAborted

MESH = 1387343541
BITMAP = 1471281566


def object_bytes(crc32, class_crc32, class_data, data):
    header = ObjectHeader(
        len(class_data) + len(data), len(class_data), len(data), 0, class_crc32, crc32
    )
    return header.pack() + class_data + data


def build_archive(
    block_objects,
    *,
    version=DEFAULT_VERSION,
    incredi="builder",
    patch=272,
    minor=380,
    pool=None,
    pool_objects=(),
):
    block = b"".join(block_objects)
    block_padded = padded_size(len(block))
    block_section = block + bytes(block_padded - len(block))
    first_crc = ObjectHeader.parse(block).crc32 if block else 0

    sector = bytearray(2048)
    encoded = version.encode()
    sector[: len(encoded)] = encoded
    struct.pack_into("<7I", sector, 256, 1, 1, 0, 0, block_padded, patch, minor)
    description = BlockDescription(
        253, len(block_objects), block_padded, len(block), 0, first_crc
    )
    sector[284 : 284 + BlockDescription.SIZE] = description.pack()

    pool_section = b""
    manifest_sectors = 0
    manifest_offset_sectors = 0
    if pool is not None:
        offset = 2048 + block_padded
        parts = []
        sizes = {}
        for crc32, class_crc32, data in pool_objects:
            raw = ObjectHeader(len(data), 0, len(data), 0, class_crc32, crc32).pack() + data
            raw += b"\xff" * (padded_size(len(raw)) - len(raw))
            parts.append(raw)
            sizes[crc32] = len(raw) // 2048
        manifest = pool_manifest_bytes(pool, sizes, offset)
        manifest_sectors = len(manifest) // 2048
        manifest_offset_sectors = offset // 2048
        pool_section = manifest + b"".join(parts)

    total = 2048 + len(block_section) + len(pool_section)
    if incredi:
        block_padding, pool_padding, file_size = 0, 0, total
    else:
        block_padding, pool_padding, file_size = NO_VALUE, NO_VALUE, NO_VALUE
    struct.pack_into(
        "<8I",
        sector,
        0x720,
        manifest_sectors,
        manifest_offset_sectors,
        7,
        7,
        0,
        block_padding,
        pool_padding,
        file_size,
    )
    if incredi:
        text = incredi.encode()
        sector[0x740 : 0x740 + len(text)] = text
    return bytes(sector) + block_section + pool_section


QUIET = Options(quiet=True)


def write_archive(tmp_path, data):
    path = tmp_path / "archive.dpc"
    path.write_bytes(data)
    return path


def test_extract_writes_objects_and_manifest(tmp_path):
    first = object_bytes(10, MESH, b"cls", b"payload")
    second = object_bytes(20, BITMAP, b"", b"pixels")
    archive = write_archive(tmp_path, build_archive([first, second]))
    out = tmp_path / "out"

    manifest = extract_dpc(archive, out, QUIET)

    assert (out / "objects" / "10.Mesh_Z").read_bytes() == first
    assert (out / "objects" / "20.Bitmap_Z").read_bytes() == second
    assert Manifest.loads((out / "manifest.json").read_text(encoding="utf-8")) == manifest
    assert [o.crc32 for o in manifest.blocks[0].objects] == [10, 20]
    assert manifest.header.version_string == DEFAULT_VERSION
    assert manifest.header.version_minor is None
    assert manifest.header.pool_manifest_unused == 7
    assert manifest.header.is_rtc is False
    assert manifest.header.incredi_builder_string == "builder"
    assert manifest.pool is None
    assert (out / "references.txt").read_text() == ""


def test_unknown_class_uses_decimal_hash(tmp_path):
    data = object_bytes(7, 12345, b"a", b"b")
    archive = write_archive(tmp_path, build_archive([data]))
    extract_dpc(archive, tmp_path / "out", QUIET)
    assert (tmp_path / "out" / "objects" / "7.12345").read_bytes() == data


def test_duplicate_objects_written_once(tmp_path):
    data = object_bytes(1, MESH, b"c", b"d")
    archive = write_archive(tmp_path, build_archive([data, data]))
    manifest = extract_dpc(archive, tmp_path / "out", QUIET)
    assert [o.crc32 for o in manifest.blocks[0].objects] == [1, 1]
    assert sorted(p.name for p in (tmp_path / "out" / "objects").iterdir()) == ["1.Mesh_Z"]


def test_unknown_version_requires_unsafe(tmp_path):
    archive = write_archive(
        tmp_path, build_archive([object_bytes(1, MESH, b"", b"x")], version="v0 test")
    )
    with pytest.raises(FormatError):
        extract_dpc(archive, tmp_path / "out", QUIET)


def test_unknown_version_with_unsafe_records_numbers(tmp_path):
    archive = write_archive(
        tmp_path,
        build_archive(
            [object_bytes(1, MESH, b"", b"x")], version="v0 test", patch=5, minor=6
        ),
    )
    manifest = extract_dpc(archive, tmp_path / "out", Options(quiet=True, unsafe=True))
    assert manifest.header.version_string == "v0 test"
    assert manifest.header.version_patch == 5
    assert manifest.header.version_minor == 6
    assert manifest.header.block_type == 253


def test_missing_incredi_string(tmp_path):
    archive = write_archive(
        tmp_path, build_archive([object_bytes(1, MESH, b"", b"x")], incredi="")
    )
    manifest = extract_dpc(archive, tmp_path / "out", QUIET)
    assert manifest.header.incredi_builder_string == ""


def test_existing_output_skip(tmp_path):
    archive = write_archive(tmp_path, build_archive([object_bytes(1, MESH, b"", b"x")]))
    out = tmp_path / "out"
    out.mkdir()
    result = extract_dpc(archive, out, QUIET, ask=lambda prompt, choices: 1)
    assert result is None
    assert not (out / "manifest.json").exists()


def test_existing_output_abort(tmp_path):
    archive = write_archive(tmp_path, build_archive([object_bytes(1, MESH, b"", b"x")]))
    out = tmp_path / "out"
    out.mkdir()
    with pytest.raises(OverwriteAborted):
        extract_dpc(archive, out, QUIET, ask=lambda prompt, choices: 0)


def test_named_object_file_is_reused(tmp_path):
    data = object_bytes(3, MESH, b"c", b"body")
    archive = write_archive(tmp_path, build_archive([data]))
    out = tmp_path / "out"
    (out / "objects").mkdir(parents=True)
    named = out / "objects" / "3_wheel.Mesh_Z"
    named.write_bytes(b"old")
    extract_dpc(archive, out, Options(quiet=True, force=True))
    assert named.read_bytes() == data
    assert not (out / "objects" / "3.Mesh_Z").exists()


def test_truncated_block_raises(tmp_path):
    data = build_archive([object_bytes(1, MESH, b"c", b"body")])
    archive = write_archive(tmp_path, data[: 2048 + 10])
    with pytest.raises(FormatError):
        extract_dpc(archive, tmp_path / "out", QUIET)


def test_pool_object_is_merged_into_object_file(tmp_path):
    class_data = b"classobj"
    pooled = b"pooldata"
    block_object = (
        ObjectHeader(len(class_data), len(class_data), 0, 0, MESH, 500).pack() + class_data
    )
    pool = Pool([0], [PoolObjectEntry(500, 1)], [ReferenceRange(0, 1)])
    archive = write_archive(
        tmp_path,
        build_archive([block_object], pool=pool, pool_objects=[(500, MESH, pooled)]),
    )
    out = tmp_path / "out"

    manifest = extract_dpc(archive, out, QUIET)

    expected = (
        ObjectHeader(
            len(class_data) + len(pooled), len(class_data), len(pooled), 0, MESH, 500
        ).pack()
        + class_data
        + pooled
    )
    assert (out / "objects" / "500.Mesh_Z").read_bytes() == expected
    assert manifest.pool == pool
    assert manifest.blocks[0].objects[0].compress is False


def test_find_object_path_default(tmp_path):
    assert find_object_path(tmp_path, 5, "Mesh_Z") == tmp_path / "5.Mesh_Z"


def test_find_object_path_named(tmp_path):
    (tmp_path / "5_tree.Mesh_Z").write_bytes(b"")
    assert find_object_path(tmp_path, 5, "Mesh_Z") == tmp_path / "5_tree.Mesh_Z"


def test_find_object_path_prefers_plain_file(tmp_path):
    (tmp_path / "5.Mesh_Z").write_bytes(b"")
    (tmp_path / "5_tree.Mesh_Z").write_bytes(b"")
    assert find_object_path(tmp_path, 5, "Mesh_Z") == tmp_path / "5.Mesh_Z"


def test_find_object_path_ambiguous(tmp_path):
    (tmp_path / "5_a.Mesh_Z").write_bytes(b"")
    (tmp_path / "5_b.Mesh_Z").write_bytes(b"")
    with pytest.raises(ValueError):
        find_object_path(tmp_path, 5, "Mesh_Z")