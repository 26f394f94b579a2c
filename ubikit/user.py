"""UBI kernel interface: ioctl numbers, constants and request structures."""

from __future__ import annotations

import struct
from dataclasses import dataclass, field
from enum import IntEnum
from typing import ClassVar, List, Union

UBI_VOL_NUM_AUTO = -1
UBI_DEV_NUM_AUTO = -1

UBI_MAX_VOLUME_NAME = 127
MAX_UBI_MTD_NAME_LEN = 127
UBI_MAX_RNVOL = 32

UBI_VOL_PROP_DIRECT_WRITE = 1

UBI_IOC_MAGIC = "o"
UBI_CTRL_IOC_MAGIC = "o"
UBI_VOL_IOC_MAGIC = "O"

_IOC_NRBITS = 8
_IOC_TYPEBITS = 8
_IOC_SIZEBITS = 14
_IOC_NRSHIFT = 0
_IOC_TYPESHIFT = _IOC_NRSHIFT + _IOC_NRBITS
_IOC_SIZESHIFT = _IOC_TYPESHIFT + _IOC_TYPEBITS
_IOC_DIRSHIFT = _IOC_SIZESHIFT + _IOC_SIZEBITS
_IOC_WRITE = 1
_IOC_READ = 2


class VolumeType(IntEnum):
    """UBI volume type."""

    DYNAMIC = 3
    STATIC = 4


def _magic_value(magic: Union[str, int]) -> int:
    value = ord(magic) if isinstance(magic, str) else int(magic)
    if not 0 <= value < (1 << _IOC_TYPEBITS):
        raise ValueError(f"ioctl magic out of range: {magic!r}")
    return value


def _ioc(direction: int, magic: Union[str, int], nr: int, size: int) -> int:
    if not 0 <= nr < (1 << _IOC_NRBITS):
        raise ValueError(f"ioctl number out of range: {nr}")
    if not 0 <= size < (1 << _IOC_SIZEBITS):
        raise ValueError(f"ioctl argument size out of range: {size}")
    return (
        (direction << _IOC_DIRSHIFT)
        | (_magic_value(magic) << _IOC_TYPESHIFT)
        | (nr << _IOC_NRSHIFT)
        | (size << _IOC_SIZESHIFT)
    )


def ioc_w(magic: Union[str, int], nr: int, size: int) -> int:
    """Encode a write-direction ioctl request number."""
    return _ioc(_IOC_WRITE, magic, nr, size)


def ioc_r(magic: Union[str, int], nr: int, size: int) -> int:
    """Encode a read-direction ioctl request number."""
    return _ioc(_IOC_READ, magic, nr, size)


def _pack(layout: struct.Struct, *values) -> bytes:
    try:
        return layout.pack(*values)
    except struct.error as exc:
        raise ValueError(str(exc)) from exc


def _encode_name(name: str) -> bytes:
    raw = name.encode("utf-8")
    if len(raw) > UBI_MAX_VOLUME_NAME:
        raise ValueError(
            f"volume name is {len(raw)} bytes, at most {UBI_MAX_VOLUME_NAME} allowed"
        )
    return raw


def _check_length(layout: struct.Struct, data: bytes, what: str) -> None:
    if len(data) != layout.size:
        raise ValueError(f"{what} needs {layout.size} bytes, got {len(data)}")


@dataclass
class AttachReq:
    """MTD device attach request passed to the control device."""

    ubi_num: int = UBI_DEV_NUM_AUTO
    mtd_num: int = 0
    vid_hdr_offset: int = 0
    max_beb_per1024: int = 0

    STRUCT: ClassVar[struct.Struct] = struct.Struct("=iiih10x")

    def pack(self) -> bytes:
        return _pack(
            self.STRUCT,
            self.ubi_num,
            self.mtd_num,
            self.vid_hdr_offset,
            self.max_beb_per1024,
        )

    @classmethod
    def unpack(cls, data: bytes) -> "AttachReq":
        _check_length(cls.STRUCT, data, "attach request")
        return cls(*cls.STRUCT.unpack(data))


@dataclass
class MkvolReq:
    """Volume creation request."""

    name: str
    nbytes: int
    vol_type: VolumeType = VolumeType.DYNAMIC
    vol_id: int = UBI_VOL_NUM_AUTO
    alignment: int = 1

    STRUCT: ClassVar[struct.Struct] = struct.Struct(
        f"=iiqbxh4x{UBI_MAX_VOLUME_NAME + 1}s"
    )

    def pack(self) -> bytes:
        raw = _encode_name(self.name)
        return _pack(
            self.STRUCT,
            self.vol_id,
            self.alignment,
            self.nbytes,
            int(self.vol_type),
            len(raw),
            raw,
        )

    @classmethod
    def unpack(cls, data: bytes) -> "MkvolReq":
        _check_length(cls.STRUCT, data, "mkvol request")
        vol_id, alignment, nbytes, vol_type, name_len, raw = cls.STRUCT.unpack(data)
        if not 0 <= name_len <= UBI_MAX_VOLUME_NAME:
            raise ValueError(f"bad volume name length {name_len}")
        return cls(
            name=raw[:name_len].decode("utf-8"),
            nbytes=nbytes,
            vol_type=VolumeType(vol_type),
            vol_id=vol_id,
            alignment=alignment,
        )


@dataclass
class RsvolReq:
    """Volume re-size request."""

    vol_id: int
    nbytes: int

    STRUCT: ClassVar[struct.Struct] = struct.Struct("=qi")

    def pack(self) -> bytes:
        return _pack(self.STRUCT, self.nbytes, self.vol_id)


@dataclass
class RnvolEntry:
    """One volume to rename and its new name."""

    vol_id: int
    name: str

    STRUCT: ClassVar[struct.Struct] = struct.Struct(
        f"=ih2x{UBI_MAX_VOLUME_NAME + 1}s"
    )

    def pack(self) -> bytes:
        raw = _encode_name(self.name)
        return _pack(self.STRUCT, self.vol_id, len(raw), raw)


@dataclass
class RnvolReq:
    """Atomic rename of up to UBI_MAX_RNVOL volumes."""

    entries: List[RnvolEntry] = field(default_factory=list)

    HEADER: ClassVar[struct.Struct] = struct.Struct("=i12x")
    SIZE: ClassVar[int] = HEADER.size + UBI_MAX_RNVOL * RnvolEntry.STRUCT.size

    def pack(self) -> bytes:
        if len(self.entries) > UBI_MAX_RNVOL:
            raise ValueError(
                f"{len(self.entries)} renames requested, at most {UBI_MAX_RNVOL} allowed"
            )
        body = b"".join(entry.pack() for entry in self.entries)
        packed = _pack(self.HEADER, len(self.entries)) + body
        return packed.ljust(self.SIZE, b"\0")


@dataclass
class LebChangeReq:
    """Atomic logical eraseblock change request."""

    lnum: int
    nbytes: int
    dtype: int = 3

    STRUCT: ClassVar[struct.Struct] = struct.Struct("=iib7x")

    def pack(self) -> bytes:
        return _pack(self.STRUCT, self.lnum, self.nbytes, self.dtype)


@dataclass
class MapReq:
    """Logical eraseblock map request."""

    lnum: int
    dtype: int = 3

    STRUCT: ClassVar[struct.Struct] = struct.Struct("=ib3x")

    def pack(self) -> bytes:
        return _pack(self.STRUCT, self.lnum, self.dtype)


@dataclass
class SetVolPropReq:
    """Volume property change request."""

    property: int
    value: int

    STRUCT: ClassVar[struct.Struct] = struct.Struct("=B7xQ")

    def pack(self) -> bytes:
        return _pack(self.STRUCT, self.property, self.value)


_INT32 = 4
_INT64 = 8

UBI_IOCMKVOL = ioc_w(UBI_IOC_MAGIC, 0, MkvolReq.STRUCT.size)
UBI_IOCRMVOL = ioc_w(UBI_IOC_MAGIC, 1, _INT32)
UBI_IOCRSVOL = ioc_w(UBI_IOC_MAGIC, 2, RsvolReq.STRUCT.size)
UBI_IOCRNVOL = ioc_w(UBI_IOC_MAGIC, 3, RnvolReq.SIZE)

UBI_IOCATT = ioc_w(UBI_CTRL_IOC_MAGIC, 64, AttachReq.STRUCT.size)
UBI_IOCDET = ioc_w(UBI_CTRL_IOC_MAGIC, 65, _INT32)
UBI_IOCFDET = ioc_w(UBI_CTRL_IOC_MAGIC, 99, _INT32)

UBI_IOCVOLUP = ioc_w(UBI_VOL_IOC_MAGIC, 0, _INT64)
UBI_IOCEBER = ioc_w(UBI_VOL_IOC_MAGIC, 1, _INT32)
UBI_IOCEBCH = ioc_w(UBI_VOL_IOC_MAGIC, 2, _INT32)
UBI_IOCEBMAP = ioc_w(UBI_VOL_IOC_MAGIC, 3, MapReq.STRUCT.size)
UBI_IOCEBUNMAP = ioc_w(UBI_VOL_IOC_MAGIC, 4, _INT32)
UBI_IOCEBISMAP = ioc_r(UBI_VOL_IOC_MAGIC, 5, _INT32)
UBI_IOCSETVOLPROP = ioc_w(UBI_VOL_IOC_MAGIC, 6, SetVolPropReq.STRUCT.size)