"""Sysfs file layout of the UBI subsystem and readers for its attribute files."""

from __future__ import annotations

import errno
import re
from typing import Tuple, Union

PathLike = Union[str, "os.PathLike[str]"]  # noqa: F821

LIBUBI_UBI_VERSION = 1

INT_MAX = 2**31 - 1
LLONG_MAX = 2**63 - 1

SYSFS_UBI = "class/ubi"
SYSFS_CTRL = "class/misc/ubi_ctrl/"

CTRL_DEV = "dev"

UBI_VER = "version"
UBI_DEV_NAME_PATT = "ubi%d"

DEV_DEV = "dev"
DEV_AVAIL_EBS = "avail_eraseblocks"
DEV_TOTAL_EBS = "total_eraseblocks"
DEV_BAD_COUNT = "bad_peb_count"
DEV_EB_SIZE = "eraseblock_size"
DEV_MAX_EC = "max_ec"
DEV_MAX_RSVD = "reserved_for_bad"
DEV_MAX_VOLS = "max_vol_count"
DEV_MIN_IO_SIZE = "min_io_size"
DEV_MTD_NUM = "mtd_num"

UBI_VOL_NAME_PATT = "ubi%d_%d"
VOL_TYPE = "type"
VOL_DEV = "dev"
VOL_ALIGNMENT = "alignment"
VOL_DATA_BYTES = "data_bytes"
VOL_RSVD_EBS = "reserved_ebs"
VOL_EB_SIZE = "usable_eb_size"
VOL_CORRUPTED = "corrupted"
VOL_NAME = "name"

_NUMBER_BUF = 50

_WS = rb"[ \t\n\v\f\r]*"
_INT_RE = re.compile(_WS + rb"([+-]?[0-9]+)")
_MAJOR_RE = re.compile(_WS + rb"([+-]?[0-9]+):" + _WS + rb"([+-]?[0-9]+)")


class UbiError(OSError):
    """An error from the UBI library; ``errno`` tells what went wrong."""


def _invalid(message: str, path: PathLike) -> UbiError:
    return UbiError(errno.EINVAL, message, str(path))


def _read_limited(path: PathLike, limit: int) -> Tuple[bytes, bool]:
    """Read up to ``limit`` bytes; also report whether more data follows."""
    try:
        with open(path, "rb") as handle:
            data = handle.read(limit)
            extra = handle.read(4) if len(data) < limit else b""
    except OSError as exc:
        raise UbiError(exc.errno or errno.EIO, f"cannot read \"{path}\"", str(path)) from exc
    return data, bool(extra)


def read_positive_ll(path: PathLike) -> int:
    """Read a non-negative 64-bit integer from a sysfs file."""
    data, _ = _read_limited(path, _NUMBER_BUF)
    if len(data) == _NUMBER_BUF:
        raise _invalid(f"contents of \"{path}\" is too long", path)
    match = _INT_RE.match(data)
    if match is None:
        raise _invalid(f"cannot read integer from \"{path}\"", path)
    value = int(match.group(1))
    if value > LLONG_MAX:
        raise _invalid(f"value in \"{path}\" is out of range", path)
    if value < 0:
        raise _invalid(f"negative value {value} in \"{path}\"", path)
    return value


def read_positive_int(path: PathLike) -> int:
    """Read a non-negative integer that must fit a C int."""
    value = read_positive_ll(path)
    if value > INT_MAX:
        raise _invalid(
            f"value {value} read from file \"{path}\" is out of range", path
        )
    return value


def read_data(path: PathLike, limit: int) -> bytes:
    """Read a whole file that must hold fewer than ``limit`` bytes."""
    data, more = _read_limited(path, limit)
    if len(data) == limit:
        raise _invalid(f"contents of \"{path}\" is too long", path)
    if more:
        raise _invalid(
            f"file \"{path}\" contains too much data (> {limit} bytes)", path
        )
    return data


def read_major(path: PathLike) -> Tuple[int, int]:
    """Read a ``major:minor`` device number pair."""
    data = read_data(path, _NUMBER_BUF)
    match = _MAJOR_RE.match(data)
    if match is None:
        raise _invalid(f"\"{path}\" does not have major:minor format", path)
    major, minor = int(match.group(1)), int(match.group(2))
    if major < 0 or minor < 0:
        raise _invalid(f"bad major:minor {major}:{minor} in \"{path}\"", path)
    return major, minor


def _mkpath(path: str, name: str) -> str:
    if path.endswith("/"):
        return path + name
    return f"{path}/{name}"


class SysfsLayout:
    """Paths of the UBI control, device and volume files under a sysfs root."""

    def __init__(self, sysfs: str = "/sys") -> None:
        self.sysfs = sysfs
        self.sysfs_ctrl = _mkpath(sysfs, SYSFS_CTRL)
        self.ctrl_dev = _mkpath(self.sysfs_ctrl, CTRL_DEV)
        self.sysfs_ubi = _mkpath(sysfs, SYSFS_UBI)
        self.ubi_version = _mkpath(self.sysfs_ubi, UBI_VER)

    def dev_path(self, name: str, dev_num: int) -> str:
        """Path of file ``name`` of UBI device ``dev_num``; its directory if empty."""
        directory = _mkpath(self.sysfs_ubi, UBI_DEV_NAME_PATT % dev_num)
        return _mkpath(directory, name) if name else directory

    def vol_path(self, name: str, dev_num: int, vol_id: int) -> str:
        """Path of file ``name`` of volume ``vol_id``; its directory if empty."""
        directory = _mkpath(self.sysfs_ubi, UBI_VOL_NAME_PATT % (dev_num, vol_id))
        return _mkpath(directory, name) if name else directory