"""Binary structures of the FUEL archive format."""

from __future__ import annotations

import struct
from dataclasses import astuple, dataclass, field

SECTOR_SIZE = 2048
HEADER_SIZE = 2048
VERSION_STRING_SIZE = 256
INCREDI_BUILDER_STRING_SIZE = 128
HEADER_TAIL_OFFSET = 0x720
MAX_BLOCK_COUNT = 64
NO_VALUE = 0xFFFFFFFF

DEFAULT_VERSION = "v1.381.67.09 - Asobo Studio - Internal Cross Technology"

# version string -> (version_patch, version_minor, first block type)
VERSION_LOOKUP: dict[str, tuple[int, int, int]] = {
    "v1.530.62.09 - Asobo Studio - Internal Cross Technology": (290, 529, 150),
    "v1.381.67.09 - Asobo Studio - Internal Cross Technology": (272, 380, 253),
    "v1.381.66.09 - Asobo Studio - Internal Cross Technology": (272, 380, 252),
    "v1.381.65.09 - Asobo Studio - Internal Cross Technology": (271, 380, 249),
    "v1.381.64.09 - Asobo Studio - Internal Cross Technology": (271, 380, 249),
    "v1.379.60.09 - Asobo Studio - Internal Cross Technology": (269, 380, 211),
    "v1.325.50.07 - Asobo Studio - Internal Cross Technology": (262, 326, 146),
    "v1.220.50.07 - Asobo Studio - Internal Cross Technology": (262, 221, 144),
}

CLASS_NAMES: dict[int, str] = {
    549480509: "Omni_Z",
    705810152: "Rtc_Z",
    838505646: "GenWorld_Z",
    848525546: "LightData_Z",
    849267944: "Sound_Z",
    849861735: "MaterialObj_Z",
    866453734: "RotShape_Z",
    954499543: "ParticlesData_Z",
    968261323: "World_Z",
    1114947943: "Warp_Z",
    1135194223: "Spline_Z",
    1175485833: "Animation_Z",
    1387343541: "Mesh_Z",
    1391959958: "UserDefine_Z",
    1396791303: "Skin_Z",
    1471281566: "Bitmap_Z",
    1536002910: "Fonts_Z",
    1625945536: "RotShapeData_Z",
    1706265229: "Surface_Z",
    1910554652: "SplineGraph_Z",
    1943824915: "Lod_Z",
    2204276779: "Material_Z",
    2245010728: "Node_Z",
    2259852416: "Binary_Z",
    2398393906: "CollisionVol_Z",
    2906362741: "WorldRef_Z",
    3312018398: "Particles_Z",
    3412401859: "LodData_Z",
    3611002348: "Skel_Z",
    3626109572: "MeshData_Z",
    3747817665: "SurfaceDatas_Z",
    3834418854: "MaterialAnim_Z",
    3845834591: "GwRoad_Z",
    4096629181: "GameObj_Z",
    4240844041: "Camera_Z",
    4117606081: "AnimFrame_Z",
    3979333606: "CameraZone_Z",
    72309972: "Occluder_Z",
    1390918523: "Graph_Z",
    1918499807: "Light_Z",
    3210467954: "HFogData_Z",
    2735949084: "HFog_Z",
    2203168663: "Flare_Z",
    1393846573: "FlareData_Z",
}

_CLASS_CRC32S = {name: crc32 for crc32, name in CLASS_NAMES.items()}

_U32 = struct.Struct("<I")


class FormatError(ValueError):
    """Raised when archive data does not match the expected layout."""


def padded_size(size: int) -> int:
    """Round ``size`` up to a whole number of 2048-byte sectors."""
    return (size + 0x7FF) & 0xFFFFF800


def padding_size(size: int) -> int:
    """Number of bytes needed to pad ``size`` to the next sector boundary."""
    return padded_size(size) - size


def class_name_for(class_crc32: int) -> str:
    """Class name for a class hash, or the hash in decimal when unknown."""
    return CLASS_NAMES.get(class_crc32, str(class_crc32))


def class_crc32_for(name: str) -> int:
    """Class hash for a class name or a decimal hash."""
    if name in _CLASS_CRC32S:
        return _CLASS_CRC32S[name]
    if not name.isdigit():
        raise FormatError(f"unknown class name: {name!r}")
    value = int(name)
    if value > 0xFFFFFFFF:
        raise FormatError(f"class hash out of range: {name!r}")
    return value


def _unpack(layout: struct.Struct, data, offset: int, what: str) -> tuple:
    if offset < 0 or offset + layout.size > len(data):
        raise FormatError(
            f"truncated {what}: need {layout.size} bytes at offset {offset}, "
            f"have {max(len(data) - offset, 0)}"
        )
    return layout.unpack_from(data, offset)


def _pack(layout: struct.Struct, values: tuple, what: str) -> bytes:
    try:
        return layout.pack(*values)
    except struct.error as exc:
        raise FormatError(f"cannot encode {what}: {exc}") from None


def _read_u32_array(data, offset: int, what: str) -> tuple[list[int], int]:
    (count,) = _unpack(_U32, data, offset, f"{what} length")
    offset += _U32.size
    layout = struct.Struct(f"<{count}I")
    values = list(_unpack(layout, data, offset, what))
    return values, offset + layout.size


@dataclass
class ObjectHeader:
    """The 24-byte header in front of every stored object."""

    data_size: int
    class_object_size: int
    decompressed_size: int
    compressed_size: int
    class_crc32: int
    crc32: int

    _LAYOUT = struct.Struct("<6I")
    SIZE = _LAYOUT.size

    @classmethod
    def parse(cls, data, offset: int = 0) -> "ObjectHeader":
        return cls(*_unpack(cls._LAYOUT, data, offset, "object header"))

    def pack(self) -> bytes:
        return _pack(self._LAYOUT, astuple(self), "object header")


@dataclass
class BlockDescription:
    """Description of one block of objects in the primary header."""

    block_type: int
    object_count: int
    padded_size: int
    data_size: int
    working_buffer_offset: int
    crc32: int

    _LAYOUT = struct.Struct("<6I")
    SIZE = _LAYOUT.size

    @classmethod
    def parse(cls, data, offset: int = 0) -> "BlockDescription":
        return cls(*_unpack(cls._LAYOUT, data, offset, "block description"))

    def pack(self) -> bytes:
        return _pack(self._LAYOUT, astuple(self), "block description")


@dataclass
class PoolManifestHeader:
    """Fixed leading fields of the pool manifest."""

    equals524288: int = 524288
    equals2048: int = 2048
    objects_crc32_count_sum: int = 0

    _LAYOUT = struct.Struct("<3I")
    SIZE = _LAYOUT.size

    @classmethod
    def parse(cls, data, offset: int = 0) -> "PoolManifestHeader":
        return cls(*_unpack(cls._LAYOUT, data, offset, "pool manifest header"))

    def pack(self) -> bytes:
        return _pack(self._LAYOUT, astuple(self), "pool manifest header")


@dataclass
class ReferenceRecord:
    """A run of pool objects loaded together, with its sector range."""

    start_chunk_index: int
    end_chunk_index: int
    objects_crc32_starting_index: int
    placeholder_dpc_index: int
    objects_crc32_count: int
    placeholder_times_referenced: int = NO_VALUE
    placeholder_current_references_shared: int = NO_VALUE
    placeholder_current_references_weak: int = NO_VALUE

    _LAYOUT = struct.Struct("<3I2H3I")
    SIZE = _LAYOUT.size

    @classmethod
    def parse(cls, data, offset: int = 0) -> "ReferenceRecord":
        return cls(*_unpack(cls._LAYOUT, data, offset, "reference record"))

    def pack(self) -> bytes:
        return _pack(self._LAYOUT, astuple(self), "reference record")


@dataclass
class PoolManifest:
    """Index of the objects stored in the pool section."""

    header: PoolManifestHeader
    objects_crc32s: list[int] = field(default_factory=list)
    crc32s: list[int] = field(default_factory=list)
    reference_counts: list[int] = field(default_factory=list)
    object_padded_size: list[int] = field(default_factory=list)
    reference_records_indices: list[int] = field(default_factory=list)
    reference_records: list[ReferenceRecord] = field(default_factory=list)

    @classmethod
    def parse(cls, data, offset: int = 0) -> "PoolManifest":
        header = PoolManifestHeader.parse(data, offset)
        position = offset + PoolManifestHeader.SIZE
        arrays = []
        for what in (
            "objects crc32s",
            "crc32s",
            "reference counts",
            "object padded sizes",
            "reference record indices",
        ):
            values, position = _read_u32_array(data, position, what)
            arrays.append(values)
        (count,) = _unpack(_U32, data, position, "reference records length")
        position += _U32.size
        records = [
            ReferenceRecord.parse(data, position + number * ReferenceRecord.SIZE)
            for number in range(count)
        ]
        return cls(header, *arrays, records)

    @property
    def byte_size(self) -> int:
        """Encoded size in bytes, excluding any terminal record or padding."""
        arrays = (
            self.objects_crc32s,
            self.crc32s,
            self.reference_counts,
            self.object_padded_size,
            self.reference_records_indices,
        )
        return (
            PoolManifestHeader.SIZE
            + sum(_U32.size * (1 + len(values)) for values in arrays)
            + _U32.size
            + ReferenceRecord.SIZE * len(self.reference_records)
        )


_HEADER_PART_A = struct.Struct("<7I")
_HEADER_PART_B = struct.Struct("<8I")


def _c_string(data, offset: int, size: int, what: str) -> str:
    if offset + size > len(data):
        raise FormatError(f"truncated {what}")
    try:
        text = bytes(data[offset : offset + size]).decode("utf-8")
    except UnicodeDecodeError as exc:
        raise FormatError(f"{what} is not valid UTF-8: {exc}") from None
    return text.rstrip("\0")


@dataclass
class PrimaryHeader:
    """The first 2048-byte sector of an archive."""

    version_string: str
    is_not_rtc: int
    block_count: int
    block_working_buffer_capacity_even: int
    block_working_buffer_capacity_odd: int
    padded_size: int
    version_patch: int
    version_minor: int
    block_descriptions: list[BlockDescription]
    pool_manifest_padded_size: int
    pool_manifest_offset: int
    pool_manifest_unused0: int
    pool_manifest_unused1: int
    pool_object_decompression_buffer_capacity: int
    block_sector_padding_size: int
    pool_sector_padding_size: int
    file_size: int
    incredi_builder_string: str

    @classmethod
    def parse(cls, data) -> "PrimaryHeader":
        version_string = _c_string(data, 0, VERSION_STRING_SIZE, "version string")
        part_a = _unpack(_HEADER_PART_A, data, VERSION_STRING_SIZE, "primary header")
        block_count = part_a[1]
        if block_count > MAX_BLOCK_COUNT:
            raise FormatError(
                f"block count {block_count} exceeds the maximum of {MAX_BLOCK_COUNT}"
            )
        first_block = VERSION_STRING_SIZE + _HEADER_PART_A.size
        blocks = [
            BlockDescription.parse(data, first_block + number * BlockDescription.SIZE)
            for number in range(block_count)
        ]
        part_b = list(
            _unpack(_HEADER_PART_B, data, HEADER_TAIL_OFFSET, "primary header tail")
        )
        part_b[0] *= SECTOR_SIZE
        part_b[1] *= SECTOR_SIZE
        file_size = part_b[7]
        if file_size != NO_VALUE:
            incredi = _c_string(
                data,
                HEADER_TAIL_OFFSET + _HEADER_PART_B.size,
                INCREDI_BUILDER_STRING_SIZE,
                "incredi builder string",
            )
        else:
            incredi = ""
        return cls(version_string, *part_a, blocks, *part_b, incredi)