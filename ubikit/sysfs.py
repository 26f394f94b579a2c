"""Read-only queries about UBI devices and volumes through sysfs."""

from __future__ import annotations

import errno
import os
import re
import stat
from dataclasses import dataclass
from enum import IntEnum
from typing import Iterator, Optional, Tuple

from ubikit.layout import (
    DEV_AVAIL_EBS,
    DEV_BAD_COUNT,
    DEV_DEV,
    DEV_EB_SIZE,
    DEV_MAX_EC,
    DEV_MAX_RSVD,
    DEV_MAX_VOLS,
    DEV_MIN_IO_SIZE,
    DEV_MTD_NUM,
    DEV_TOTAL_EBS,
    INT_MAX,
    LIBUBI_UBI_VERSION,
    VOL_ALIGNMENT,
    VOL_CORRUPTED,
    VOL_DATA_BYTES,
    VOL_DEV,
    VOL_EB_SIZE,
    VOL_NAME,
    VOL_RSVD_EBS,
    VOL_TYPE,
    SysfsLayout,
    UbiError,
    read_data,
    read_major,
    read_positive_int,
    read_positive_ll,
)
from ubikit.user import UBI_MAX_VOLUME_NAME, VolumeType

UBI_VOL_NAME_MAX = UBI_MAX_VOLUME_NAME

_TYPE_BUF = 50
_MAX_ENTRY_LEN = 255

_DEV_ENTRY_RE = re.compile(r"ubi([+-]?[0-9]+)")
_VOL_ENTRY_RE = re.compile(r"ubi([+-]?[0-9]+)_([+-]?[0-9]+)")


class NodeKind(IntEnum):
    """What a character device node turned out to be."""

    DEVICE = 1
    VOLUME = 2


@dataclass
class UbiInfo:
    """General UBI information."""

    dev_count: int = 0
    lowest_dev_num: int = 0
    highest_dev_num: int = 0
    version: int = 0
    ctrl_major: int = -1
    ctrl_minor: int = -1


@dataclass
class UbiDevInfo:
    """Information about one UBI device."""

    dev_num: int
    mtd_num: int = 0
    vol_count: int = 0
    lowest_vol_id: int = 0
    highest_vol_id: int = 0
    major: int = 0
    minor: int = 0
    total_lebs: int = 0
    avail_lebs: int = 0
    total_bytes: int = 0
    avail_bytes: int = 0
    bad_count: int = 0
    leb_size: int = 0
    max_ec: int = 0
    bad_rsvd: int = 0
    max_vol_count: int = 0
    min_io_size: int = 0


@dataclass
class UbiVolInfo:
    """Information about one UBI volume."""

    dev_num: int
    vol_id: int
    major: int = 0
    minor: int = 0
    type: VolumeType = VolumeType.DYNAMIC
    alignment: int = 0
    data_bytes: int = 0
    rsvd_bytes: int = 0
    rsvd_lebs: int = 0
    leb_size: int = 0
    corrupted: int = 0
    name: str = ""


def _char_device(node: str) -> Tuple[int, int]:
    """Return (major, minor) of a character device node."""
    try:
        st = os.stat(node)
    except OSError as exc:
        raise UbiError(
            exc.errno or errno.EIO, f'cannot get information about "{node}"', node
        ) from exc
    if not stat.S_ISCHR(st.st_mode):
        raise UbiError(errno.EINVAL, f'"{node}" is not a character device', node)
    return os.major(st.st_rdev), os.minor(st.st_rdev)


class Libubi:
    """Handle on the UBI subsystem as seen under a sysfs root."""

    def __init__(self, sysfs: str = "/sys") -> None:
        self.layout = SysfsLayout(sysfs)
        if not os.path.exists(self.layout.sysfs_ubi):
            raise UbiError(
                errno.ENOENT, "UBI is not present in the system", self.layout.sysfs_ubi
            )
        version = read_positive_int(self.layout.ubi_version)
        if version != LIBUBI_UBI_VERSION:
            raise UbiError(
                errno.EINVAL,
                f"this library was made for UBI version {LIBUBI_UBI_VERSION}, "
                f"but UBI version {version} is detected",
                self.layout.ubi_version,
            )

    def _entries(self) -> Iterator[str]:
        root = self.layout.sysfs_ubi
        try:
            names = os.listdir(root)
        except OSError as exc:
            raise UbiError(
                exc.errno or errno.EIO, f'readdir failed on "{root}"', root
            ) from exc
        for name in names:
            if len(name) >= _MAX_ENTRY_LEN:
                raise UbiError(errno.EINVAL, f'invalid entry in {root}: "{name}"', root)
            yield name

    def _dev_major(self, dev_num: int) -> Tuple[int, int]:
        return read_major(self.layout.dev_path(DEV_DEV, dev_num))

    def _dev_int(self, name: str, dev_num: int) -> int:
        return read_positive_int(self.layout.dev_path(name, dev_num))

    def _vol_int(self, name: str, dev_num: int, vol_id: int) -> int:
        return read_positive_int(self.layout.vol_path(name, dev_num, vol_id))

    def get_info(self) -> UbiInfo:
        """Return general UBI information."""
        info = UbiInfo()
        try:
            info.ctrl_major, info.ctrl_minor = read_major(self.layout.ctrl_dev)
        except UbiError:
            # Older UBI versions had no control device.
            info.ctrl_major = info.ctrl_minor = -1

        lowest = INT_MAX
        for name in self._entries():
            match = _DEV_ENTRY_RE.fullmatch(name)
            if match is None:
                continue
            dev_num = int(match.group(1))
            info.dev_count += 1
            info.highest_dev_num = max(info.highest_dev_num, dev_num)
            lowest = min(lowest, dev_num)
        info.lowest_dev_num = 0 if lowest == INT_MAX else lowest
        info.version = read_positive_int(self.layout.ubi_version)
        return info

    def _dev_range(self) -> range:
        info = self.get_info()
        return range(info.lowest_dev_num, info.highest_dev_num + 1)

    def dev_present(self, dev_num: int) -> bool:
        """Tell whether UBI device ``dev_num`` exists."""
        return os.path.exists(self.layout.dev_path("", dev_num))

    def mtd_num2ubi_dev(self, mtd_num: int) -> int:
        """Return the UBI device number that MTD device ``mtd_num`` is attached to."""
        for dev_num in self._dev_range():
            try:
                found = self._dev_int(DEV_MTD_NUM, dev_num)
            except UbiError as exc:
                if exc.errno == errno.ENOENT:
                    continue
                raise
            if found == mtd_num:
                return dev_num
        raise UbiError(errno.ENODEV, f"MTD device {mtd_num} is not attached to UBI")

    def get_dev_info1(self, dev_num: int) -> UbiDevInfo:
        """Return information about UBI device ``dev_num``."""
        if not self.dev_present(dev_num):
            raise UbiError(
                errno.ENODEV, f"UBI device {dev_num} does not exist",
                self.layout.dev_path("", dev_num),
            )
        info = UbiDevInfo(dev_num=dev_num)

        lowest = INT_MAX
        for name in self._entries():
            match = _VOL_ENTRY_RE.fullmatch(name)
            if match is None or int(match.group(1)) != dev_num:
                continue
            vol_id = int(match.group(2))
            info.vol_count += 1
            info.highest_vol_id = max(info.highest_vol_id, vol_id)
            lowest = min(lowest, vol_id)
        info.lowest_vol_id = 0 if lowest == INT_MAX else lowest

        info.major, info.minor = self._dev_major(dev_num)
        info.mtd_num = self._dev_int(DEV_MTD_NUM, dev_num)
        info.avail_lebs = self._dev_int(DEV_AVAIL_EBS, dev_num)
        info.total_lebs = self._dev_int(DEV_TOTAL_EBS, dev_num)
        info.bad_count = self._dev_int(DEV_BAD_COUNT, dev_num)
        info.leb_size = self._dev_int(DEV_EB_SIZE, dev_num)
        info.bad_rsvd = self._dev_int(DEV_MAX_RSVD, dev_num)
        info.max_ec = read_positive_ll(self.layout.dev_path(DEV_MAX_EC, dev_num))
        info.max_vol_count = self._dev_int(DEV_MAX_VOLS, dev_num)
        info.min_io_size = self._dev_int(DEV_MIN_IO_SIZE, dev_num)

        info.avail_bytes = info.avail_lebs * info.leb_size
        info.total_bytes = info.total_lebs * info.leb_size
        return info

    def get_vol_info1(self, dev_num: int, vol_id: int) -> UbiVolInfo:
        """Return information about volume ``vol_id`` of UBI device ``dev_num``."""
        info = UbiVolInfo(dev_num=dev_num, vol_id=vol_id)
        layout = self.layout
        info.major, info.minor = read_major(layout.vol_path(VOL_DEV, dev_num, vol_id))

        type_path = layout.vol_path(VOL_TYPE, dev_num, vol_id)
        raw_type = read_data(type_path, _TYPE_BUF)
        if b"static\n".startswith(raw_type):
            info.type = VolumeType.STATIC
        elif b"dynamic\n".startswith(raw_type):
            info.type = VolumeType.DYNAMIC
        else:
            shown = raw_type.decode("utf-8", "replace")
            raise UbiError(errno.EINVAL, f'bad value at "{shown}"', type_path)

        info.alignment = self._vol_int(VOL_ALIGNMENT, dev_num, vol_id)
        info.data_bytes = read_positive_ll(
            layout.vol_path(VOL_DATA_BYTES, dev_num, vol_id)
        )
        info.rsvd_lebs = self._vol_int(VOL_RSVD_EBS, dev_num, vol_id)
        info.leb_size = self._vol_int(VOL_EB_SIZE, dev_num, vol_id)
        info.corrupted = self._vol_int(VOL_CORRUPTED, dev_num, vol_id)
        info.rsvd_bytes = info.leb_size * info.rsvd_lebs

        raw_name = read_data(
            layout.vol_path(VOL_NAME, dev_num, vol_id), UBI_VOL_NAME_MAX + 1
        )
        raw_name = raw_name[:-1].split(b"\0", 1)[0]
        info.name = raw_name.decode("utf-8", "replace")
        return info

    def get_vol_info1_nm(self, dev_num: int, name: str) -> UbiVolInfo:
        """Return information about the volume called ``name`` on device ``dev_num``."""
        if not name:
            raise UbiError(errno.EINVAL, 'bad "name" input parameter')
        dev_info = self.get_dev_info1(dev_num)
        for vol_id in range(dev_info.lowest_vol_id, dev_info.highest_vol_id + 1):
            try:
                info = self.get_vol_info1(dev_num, vol_id)
            except UbiError as exc:
                if exc.errno == errno.ENOENT:
                    continue
                raise
            if info.name == name:
                return info
        raise UbiError(errno.ENOENT, f'volume "{name}" not found on UBI device {dev_num}')

    def _find_dev_by_major(self, major: int) -> Optional[int]:
        """Return the device number with character major ``major``, if any."""
        for dev_num in self._dev_range():
            try:
                found, _ = self._dev_major(dev_num)
            except UbiError as exc:
                if exc.errno == errno.ENOENT:
                    continue
                raise
            if found == major:
                return dev_num
        return None

    def probe_node(self, node: str) -> NodeKind:
        """Tell whether ``node`` is a UBI device node or a UBI volume node."""
        major, minor = _char_device(node)

        def not_ubi() -> UbiError:
            return UbiError(
                errno.ENODEV,
                f'"{node}" has major:minor {major}:{minor}, but this does not '
                "correspond to any existing UBI device or volume",
                node,
            )

        dev_num = None
        for candidate in self._dev_range():
            try:
                found, _ = self._dev_major(candidate)
            except UbiError as exc:
                if exc.errno == errno.ENOENT:
                    continue
                if not exc.errno:
                    raise not_ubi() from exc
                raise
            if found == major:
                dev_num = candidate
                break
        if dev_num is None:
            raise not_ubi()
        if minor == 0:
            return NodeKind.DEVICE
        if not os.path.exists(self.layout.vol_path("", dev_num, minor - 1)):
            raise not_ubi()
        return NodeKind.VOLUME

    def dev_node2num(self, node: str) -> int:
        """Return the UBI device number of a UBI device node."""
        major, minor = _char_device(node)
        if minor != 0:
            raise UbiError(errno.EINVAL, f'"{node}" is not an UBI character device', node)
        for dev_num in self._dev_range():
            try:
                found_major, found_minor = self._dev_major(dev_num)
            except UbiError as exc:
                if exc.errno == errno.ENOENT:
                    continue
                raise
            if found_major == major:
                if found_minor != 0:
                    raise UbiError(
                        errno.EINVAL,
                        f"UBI character device minor number is {found_minor}, "
                        "but must be 0",
                        node,
                    )
                return dev_num
        raise UbiError(errno.ENODEV, f'"{node}" is not an UBI device', node)

    def vol_node2nums(self, node: str) -> Tuple[int, int]:
        """Return (device number, volume id) of a UBI volume node."""
        major, minor = _char_device(node)
        if minor == 0:
            raise UbiError(
                errno.EINVAL, f'"{node}" is not a volume character device', node
            )
        dev_num = self._find_dev_by_major(major)
        if dev_num is None:
            raise UbiError(errno.ENODEV, f'"{node}" is not an UBI volume', node)
        vol_id = minor - 1
        if not os.path.exists(self.layout.vol_path("", dev_num, vol_id)):
            raise UbiError(errno.ENODEV, f'"{node}" is not an UBI volume', node)
        return dev_num, vol_id

    def get_dev_info(self, node: str) -> UbiDevInfo:
        """Return information about the UBI device behind a device node."""
        if self.probe_node(node) != NodeKind.DEVICE:
            raise UbiError(errno.ENODEV, f'"{node}" is not an UBI device node', node)
        return self.get_dev_info1(self.dev_node2num(node))

    def get_vol_info(self, node: str) -> UbiVolInfo:
        """Return information about the UBI volume behind a volume node."""
        if self.probe_node(node) != NodeKind.VOLUME:
            raise UbiError(errno.ENODEV, f'"{node}" is not an UBI volume node', node)
        dev_num, vol_id = self.vol_node2nums(node)
        return self.get_vol_info1(dev_num, vol_id)