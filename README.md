# ubikit

`ubikit` is a Python library for Linux UBI (Unsorted Block Images) devices
and volumes. It reads device and volume information from sysfs. It also
issues the UBI ioctl requests that attach and detach MTD devices and that
create, remove, resize and rename volumes.

## Installing

```
pip install ubikit
```

You need Python 3.10 or later. There are no other dependencies.

Reading information works for any user who can read `/sys/class/ubi`. The
control operations need Linux and the rights to open the UBI character
devices.

## Modules

- `ubikit.user`: the kernel interface. It holds the ioctl request numbers
  (`UBI_IOCMKVOL`, `UBI_IOCATT`, ...) and the `ioc_w` / `ioc_r` encoders. It
  defines `VolumeType` and the binary request structures `AttachReq`,
  `MkvolReq`, `RsvolReq`, `RnvolEntry`, `RnvolReq`, `LebChangeReq`, `MapReq`
  and `SetVolPropReq`, each with a `pack()` method. `AttachReq` and
  `MkvolReq` also have `unpack()`.
- `ubikit.layout`: the sysfs file layout (`SysfsLayout`) and the readers for
  attribute files:
  - `read_positive_ll`
  - `read_positive_int`
  - `read_data`
  - `read_major`

  It also defines `UbiError`, an `OSError` that carries an `errno` value and
  is raised by the whole package.
- `ubikit.sysfs`: `Libubi`, the read-only queries, and the result classes
  `UbiInfo`, `UbiDevInfo`, `UbiVolInfo` and `NodeKind`.
- `ubikit.control`: the ioctl operations and the `AttachRequest` and
  `MkvolRequest` request classes.
- `ubikit.utils`: helpers for sizes and text.

## Reading device and volume information

```python
import errno

from ubikit.layout import UbiError
from ubikit.sysfs import Libubi

lib = Libubi("/sys")
info = lib.get_info()
for dev_num in range(info.lowest_dev_num, info.highest_dev_num + 1):
    if not lib.dev_present(dev_num):
        continue
    dev = lib.get_dev_info1(dev_num)
    print(f"ubi{dev.dev_num}: {dev.total_bytes} bytes, {dev.bad_count} bad blocks")
    for vol_id in range(dev.lowest_vol_id, dev.highest_vol_id + 1):
        try:
            vol = lib.get_vol_info1(dev_num, vol_id)
        except UbiError as exc:
            if exc.errno == errno.ENOENT:
                continue
            raise
        print(f"  {vol.name}: {vol.data_bytes} bytes")
```

`Libubi()` raises `UbiError` in two cases:

- UBI is not present under the sysfs root.
- The kernel reports a UBI version other than 1.

Other lookups:

- `lib.get_vol_info1_nm(dev_num, name)` looks up a volume by name.
- `lib.mtd_num2ubi_dev(mtd_num)` finds the UBI device attached to an MTD
  device.
- `lib.probe_node(node)` tells whether a character device node is a UBI
  device node or a volume node. It returns a `NodeKind`.
- `lib.get_dev_info(node)` and `lib.get_vol_info(node)` take a node path
  instead of numbers.

## Managing devices and volumes

```python
from ubikit.control import AttachRequest, MkvolRequest, attach, detach, mkvol, rsvol
from ubikit.sysfs import Libubi

request = AttachRequest(mtd_dev_node="/dev/mtd3")
attach("/dev/ubi_ctrl", request)           # request.dev_num now holds the new device
vol_id = mkvol("/dev/ubi0", MkvolRequest(name="rootfs_data", nbytes=4 * 1024 * 1024))
rsvol("/dev/ubi0", vol_id, 8 * 1024 * 1024)
detach(Libubi("/sys"), "/dev/ubi_ctrl", "/dev/mtd3")
```

`attach` returns `True` when the kernel ignored `max_beb_per1024` because it
does not support it.

`rnvols(node, renames)` renames up to 32 volumes atomically. Each rename is
either a `RnvolEntry` or a `(vol_id, name)` pair.

Other operations:

- `rmvol` and `remove_dev` remove a volume or a UBI device.
- `detach_mtd` detaches by MTD number instead of by node.
- `mtd_node_to_num` converts an MTD device node to its MTD number.

Some operations work on an already opened volume file descriptor:

- `update_start`
- `leb_change_start`
- `set_property`
- `leb_unmap`
- `is_mapped`

## Helpers

`ubikit.utils`:

```python
from ubikit.utils import fold_text, format_bytes, get_bytes, parse_number

get_bytes("16 MiB")          # 16777216
parse_number("0x10")         # 16
format_bytes(2048, True)     # '2048 bytes (2.0 KiB)'
fold_text("a long help text to wrap", 10)
```

- `print_text(stream, text, width)` writes folded text to a stream.
- `seed_random()` seeds the `random` module from the clock and the process
  id, and returns the seed.

## What it does not do

`ubikit` is a library only. It installs no command-line tool.

It does not write images into volumes. `update_start` and `leb_change_start`
only begin an update, and the caller writes the data to the volume's file
descriptor.

## Running the tests

```
pip install -e .[test]
pytest
```