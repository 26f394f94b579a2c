"""UBI control operations: attaching MTD devices and managing volumes via ioctl."""

from __future__ import annotations

import errno
import fcntl
import os
import stat
import struct
from contextlib import contextmanager
from dataclasses import dataclass
from typing import TYPE_CHECKING, Iterable, Iterator, Optional, Tuple, Union

from ubikit.layout import UbiError
from ubikit.user import (
    UBI_DEV_NUM_AUTO,
    UBI_IOCATT,
    UBI_IOCEBCH,
    UBI_IOCEBISMAP,
    UBI_IOCEBUNMAP,
    UBI_IOCFDET,
    UBI_IOCMKVOL,
    UBI_IOCRMVOL,
    UBI_IOCRNVOL,
    UBI_IOCRSVOL,
    UBI_IOCSETVOLPROP,
    UBI_IOCVOLUP,
    UBI_MAX_RNVOL,
    UBI_MAX_VOLUME_NAME,
    UBI_VOL_NUM_AUTO,
    AttachReq,
    LebChangeReq,
    MkvolReq,
    RnvolEntry,
    RnvolReq,
    RsvolReq,
    SetVolPropReq,
    VolumeType,
)

if TYPE_CHECKING:
    from ubikit.sysfs import Libubi

MTD_CHAR_MAJOR = 90

_INT32 = struct.Struct("=i")
_INT64 = struct.Struct("=q")

Rename = Union[RnvolEntry, Tuple[int, str]]


@dataclass
class AttachRequest:
    """MTD device attachment request.

    Either ``mtd_dev_node`` names the MTD device node, or ``mtd_num`` gives
    its number. After a successful attach ``dev_num`` holds the new UBI device
    number and ``mtd_num`` the MTD number that was attached.
    """

    dev_num: int = UBI_DEV_NUM_AUTO
    mtd_num: int = 0
    mtd_dev_node: Optional[str] = None
    vid_hdr_offset: int = 0
    max_beb_per1024: int = 0


@dataclass
class MkvolRequest:
    """Volume creation request; ``vol_id`` receives the assigned id."""

    name: str
    nbytes: int
    vol_type: VolumeType = VolumeType.DYNAMIC
    vol_id: int = UBI_VOL_NUM_AUTO
    alignment: int = 1


@contextmanager
def _opened(node: str) -> Iterator[int]:
    try:
        fd = os.open(node, os.O_RDONLY)
    except OSError as exc:
        raise UbiError(exc.errno or errno.EIO, f'cannot open "{node}"', node) from exc
    try:
        yield fd
    finally:
        os.close(fd)


def _ioctl(fd, request: int, payload: bytes, what: str) -> Tuple[int, bytes]:
    """Issue an ioctl; return its result and the buffer as the kernel left it."""
    buf = bytearray(payload)
    try:
        ret = fcntl.ioctl(fd, request, buf, True)
    except OSError as exc:
        raise UbiError(exc.errno or errno.EIO, what) from exc
    return ret, bytes(buf)


def _node_ioctl(node: str, request: int, payload: bytes, what: str) -> Tuple[int, bytes]:
    with _opened(node) as fd:
        return _ioctl(fd, request, payload, what)


def mtd_node_to_num(mtd_dev_node: str) -> int:
    """Return the MTD device number of an MTD character device node."""
    try:
        st = os.stat(mtd_dev_node)
    except OSError as exc:
        raise UbiError(
            exc.errno or errno.EIO, f'cannot stat "{mtd_dev_node}"', mtd_dev_node
        ) from exc
    if not stat.S_ISCHR(st.st_mode):
        raise UbiError(
            errno.EINVAL, f'"{mtd_dev_node}" is not a character device', mtd_dev_node
        )
    if os.major(st.st_rdev) != MTD_CHAR_MAJOR:
        raise UbiError(errno.EINVAL, f'"{mtd_dev_node}" is not an MTD device', mtd_dev_node)
    return os.minor(st.st_rdev) // 2


def _do_attach(node: str, req: AttachReq) -> int:
    _, buf = _node_ioctl(node, UBI_IOCATT, req.pack(), f'cannot attach via "{node}"')
    return AttachReq.unpack(buf).ubi_num


def attach(node: str, request: AttachRequest) -> bool:
    """Attach an MTD device through the UBI control node ``node``.

    Updates ``request.dev_num`` (and ``request.mtd_num`` when a device node was
    given). Returns True if the kernel ignored ``max_beb_per1024`` because it
    does not support it, False otherwise.
    """
    if request.mtd_dev_node:
        request.mtd_num = mtd_node_to_num(request.mtd_dev_node)

    req = AttachReq(
        ubi_num=request.dev_num,
        mtd_num=request.mtd_num,
        vid_hdr_offset=request.vid_hdr_offset,
    )

    if request.max_beb_per1024:
        # Probe with an invalid value: an old kernel ignores the field and
        # succeeds, a new one rejects it with EINVAL.
        req.max_beb_per1024 = -1
        try:
            dev_num = _do_attach(node, req)
        except UbiError as exc:
            if exc.errno != errno.EINVAL:
                raise
        else:
            request.dev_num = dev_num
            return True

    req.max_beb_per1024 = request.max_beb_per1024
    request.dev_num = _do_attach(node, req)
    return False


def remove_dev(node: str, ubi_dev: int) -> None:
    """Remove UBI device ``ubi_dev`` through the control node ``node``."""
    _node_ioctl(
        node, UBI_IOCFDET, _INT32.pack(ubi_dev), f"cannot remove UBI device {ubi_dev}"
    )


def detach_mtd(lib: "Libubi", node: str, mtd_num: int) -> None:
    """Detach MTD device ``mtd_num`` from UBI."""
    try:
        ubi_dev = lib.mtd_num2ubi_dev(mtd_num)
    except UbiError as exc:
        raise UbiError(
            errno.ENODEV, f"MTD device {mtd_num} is not attached to UBI"
        ) from exc
    remove_dev(node, ubi_dev)


def detach(lib: "Libubi", node: str, mtd_dev_node: Optional[str]) -> None:
    """Detach the MTD device behind node ``mtd_dev_node`` from UBI."""
    if not mtd_dev_node:
        raise UbiError(errno.EINVAL, "no MTD device node given")
    detach_mtd(lib, node, mtd_node_to_num(mtd_dev_node))


def mkvol(node: str, request: MkvolRequest) -> int:
    """Create a volume on UBI device ``node``; return and store its id."""
    if len(request.name.encode("utf-8")) > UBI_MAX_VOLUME_NAME:
        raise UbiError(
            errno.EINVAL,
            f'volume name "{request.name}" is longer than {UBI_MAX_VOLUME_NAME} bytes',
        )
    req = MkvolReq(
        name=request.name,
        nbytes=request.nbytes,
        vol_type=request.vol_type,
        vol_id=request.vol_id,
        alignment=request.alignment,
    )
    _, buf = _node_ioctl(
        node, UBI_IOCMKVOL, req.pack(), f'cannot create volume "{request.name}"'
    )
    request.vol_id = MkvolReq.unpack(buf).vol_id
    return request.vol_id


def rmvol(node: str, vol_id: int) -> None:
    """Remove volume ``vol_id`` from UBI device ``node``."""
    _node_ioctl(node, UBI_IOCRMVOL, _INT32.pack(vol_id), f"cannot remove volume {vol_id}")


def rnvols(node: str, renames: Iterable[Rename]) -> None:
    """Atomically rename volumes; each rename is an entry or (vol_id, name)."""
    entries = [
        item if isinstance(item, RnvolEntry) else RnvolEntry(*item) for item in renames
    ]
    if len(entries) > UBI_MAX_RNVOL:
        raise UbiError(
            errno.EINVAL,
            f"{len(entries)} renames requested, at most {UBI_MAX_RNVOL} allowed",
        )
    try:
        payload = RnvolReq(entries).pack()
    except ValueError as exc:
        raise UbiError(errno.EINVAL, str(exc)) from exc
    _node_ioctl(node, UBI_IOCRNVOL, payload, "cannot rename volumes")


def rsvol(node: str, vol_id: int, nbytes: int) -> None:
    """Resize volume ``vol_id`` of UBI device ``node`` to ``nbytes``."""
    _node_ioctl(
        node,
        UBI_IOCRSVOL,
        RsvolReq(vol_id=vol_id, nbytes=nbytes).pack(),
        f"cannot resize volume {vol_id}",
    )


def update_start(fd, nbytes: int) -> None:
    """Start a volume update of ``nbytes`` bytes on an open volume."""
    _ioctl(fd, UBI_IOCVOLUP, _INT64.pack(nbytes), "cannot start volume update")


def leb_change_start(fd, lnum: int, nbytes: int) -> None:
    """Start an atomic change of eraseblock ``lnum`` with ``nbytes`` bytes."""
    _ioctl(
        fd,
        UBI_IOCEBCH,
        LebChangeReq(lnum=lnum, nbytes=nbytes).pack(),
        f"cannot start change of LEB {lnum}",
    )


def set_property(fd, prop: int, value: int) -> None:
    """Set a property of an open volume."""
    _ioctl(
        fd,
        UBI_IOCSETVOLPROP,
        SetVolPropReq(property=prop, value=value).pack(),
        f"cannot set volume property {prop}",
    )


def leb_unmap(fd, lnum: int) -> None:
    """Unmap logical eraseblock ``lnum`` of an open volume."""
    _ioctl(fd, UBI_IOCEBUNMAP, _INT32.pack(lnum), f"cannot unmap LEB {lnum}")


def is_mapped(fd, lnum: int) -> bool:
    """Tell whether logical eraseblock ``lnum`` of an open volume is mapped."""
    ret, _ = _ioctl(fd, UBI_IOCEBISMAP, _INT32.pack(lnum), f"cannot check LEB {lnum}")
    return bool(ret)