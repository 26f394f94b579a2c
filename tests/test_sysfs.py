import errno
import os

import pytest

from ubikit.layout import UbiError
from ubikit.sysfs import Libubi, NodeKind
from ubikit.user import VolumeType


def _write(path, text):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text)


def make_sysfs(root, version="1", ctrl="10:59\n"):
    ubi = root / "class" / "ubi"
    ubi.mkdir(parents=True)
    _write(ubi / "version", f"{version}\n")
    if ctrl is not None:
        _write(root / "class" / "misc" / "ubi_ctrl" / "dev", ctrl)
    return ubi


def add_device(root, num, mtd_num, major=250, minor=0, total=100, avail=20, leb=126976):
    base = root / "class" / "ubi" / f"ubi{num}"
    values = {
        "dev": f"{major}:{minor}",
        "mtd_num": mtd_num,
        "avail_eraseblocks": avail,
        "total_eraseblocks": total,
        "bad_peb_count": 1,
        "eraseblock_size": leb,
        "max_ec": 7,
        "reserved_for_bad": 20,
        "max_vol_count": 128,
        "min_io_size": 2048,
    }
    for name, value in values.items():
        _write(base / name, f"{value}\n")


def add_volume(root, dev, vol, name, vtype="dynamic\n", rsvd=10, leb=126976):
    base = root / "class" / "ubi" / f"ubi{dev}_{vol}"
    values = {
        "dev": f"250:{vol + 1}\n",
        "type": vtype,
        "alignment": "1\n",
        "data_bytes": "4096\n",
        "reserved_ebs": f"{rsvd}\n",
        "usable_eb_size": f"{leb}\n",
        "corrupted": "0\n",
        "name": f"{name}\n",
    }
    for fname, value in values.items():
        _write(base / fname, value)


@pytest.fixture
def sysfs(tmp_path):
    make_sysfs(tmp_path)
    add_device(tmp_path, 0, mtd_num=5)
    add_device(tmp_path, 2, mtd_num=7)
    add_volume(tmp_path, 0, 0, "rootfs", vtype="static\n")
    add_volume(tmp_path, 0, 1, "rootfs_data")
    return tmp_path


def test_open_without_ubi(tmp_path):
    with pytest.raises(UbiError) as exc:
        Libubi(str(tmp_path))
    assert exc.value.errno == errno.ENOENT


def test_open_wrong_version(tmp_path):
    make_sysfs(tmp_path, version="2")
    with pytest.raises(UbiError) as exc:
        Libubi(str(tmp_path))
    assert exc.value.errno == errno.EINVAL


def test_get_info(sysfs):
    info = Libubi(str(sysfs)).get_info()
    assert info.dev_count == 2
    assert info.lowest_dev_num == 0
    assert info.highest_dev_num == 2
    assert info.version == 1
    assert (info.ctrl_major, info.ctrl_minor) == (10, 59)


def test_get_info_without_control_device(tmp_path):
    make_sysfs(tmp_path, ctrl=None)
    info = Libubi(str(tmp_path)).get_info()
    assert (info.ctrl_major, info.ctrl_minor) == (-1, -1)
    assert info.dev_count == 0
    assert info.lowest_dev_num == 0
    assert info.highest_dev_num == 0


def test_dev_present(sysfs):
    lib = Libubi(str(sysfs))
    assert lib.dev_present(0) is True
    assert lib.dev_present(1) is False


def test_mtd_num2ubi_dev(sysfs):
    lib = Libubi(str(sysfs))
    assert lib.mtd_num2ubi_dev(5) == 0
    assert lib.mtd_num2ubi_dev(7) == 2
    with pytest.raises(UbiError) as exc:
        lib.mtd_num2ubi_dev(3)
    assert exc.value.errno == errno.ENODEV


def test_get_dev_info1(sysfs):
    info = Libubi(str(sysfs)).get_dev_info1(0)
    assert info.dev_num == 0
    assert info.mtd_num == 5
    assert info.vol_count == 2
    assert (info.lowest_vol_id, info.highest_vol_id) == (0, 1)
    assert (info.major, info.minor) == (250, 0)
    assert info.total_bytes == info.total_lebs * info.leb_size
    assert info.avail_bytes == info.avail_lebs * info.leb_size
    assert info.min_io_size == 2048


def test_get_dev_info1_without_volumes(sysfs):
    info = Libubi(str(sysfs)).get_dev_info1(2)
    assert info.vol_count == 0
    assert (info.lowest_vol_id, info.highest_vol_id) == (0, 0)


def test_get_dev_info1_missing(sysfs):
    with pytest.raises(UbiError) as exc:
        Libubi(str(sysfs)).get_dev_info1(9)
    assert exc.value.errno == errno.ENODEV


def test_get_vol_info1(sysfs):
    lib = Libubi(str(sysfs))
    info = lib.get_vol_info1(0, 0)
    assert info.name == "rootfs"
    assert info.type == VolumeType.STATIC
    assert info.data_bytes == 4096
    assert info.rsvd_bytes == info.rsvd_lebs * info.leb_size
    assert lib.get_vol_info1(0, 1).type == VolumeType.DYNAMIC


def test_get_vol_info1_bad_type(sysfs):
    add_volume(sysfs, 0, 3, "broken", vtype="weird\n")
    with pytest.raises(UbiError) as exc:
        Libubi(str(sysfs)).get_vol_info1(0, 3)
    assert exc.value.errno == errno.EINVAL


def test_get_vol_info1_missing(sysfs):
    with pytest.raises(UbiError) as exc:
        Libubi(str(sysfs)).get_vol_info1(0, 5)
    assert exc.value.errno == errno.ENOENT


def test_get_vol_info1_nm(sysfs):
    lib = Libubi(str(sysfs))
    info = lib.get_vol_info1_nm(0, "rootfs_data")
    assert info.vol_id == 1
    with pytest.raises(UbiError) as exc:
        lib.get_vol_info1_nm(0, "kernel")
    assert exc.value.errno == errno.ENOENT
    with pytest.raises(UbiError) as exc:
        lib.get_vol_info1_nm(0, "")
    assert exc.value.errno == errno.EINVAL


def test_probe_regular_file(sysfs):
    lib = Libubi(str(sysfs))
    with pytest.raises(UbiError) as exc:
        lib.probe_node(str(sysfs / "class" / "ubi" / "version"))
    assert exc.value.errno == errno.EINVAL


def test_probe_missing_node(sysfs):
    with pytest.raises(UbiError) as exc:
        Libubi(str(sysfs)).probe_node(str(sysfs / "nothing"))
    assert exc.value.errno == errno.ENOENT


def _null_numbers():
    st = os.stat("/dev/null")
    return os.major(st.st_rdev), os.minor(st.st_rdev)


def test_probe_unrelated_char_device(sysfs):
    with pytest.raises(UbiError) as exc:
        Libubi(str(sysfs)).probe_node("/dev/null")
    assert exc.value.errno == errno.ENODEV


def test_char_device_as_volume(tmp_path):
    major, minor = _null_numbers()
    make_sysfs(tmp_path)
    add_device(tmp_path, 0, mtd_num=4, major=major)
    add_volume(tmp_path, 0, minor - 1, "overlay")
    lib = Libubi(str(tmp_path))
    assert lib.probe_node("/dev/null") == NodeKind.VOLUME
    assert lib.vol_node2nums("/dev/null") == (0, minor - 1)
    assert lib.get_vol_info("/dev/null").name == "overlay"
    with pytest.raises(UbiError) as exc:
        lib.get_dev_info("/dev/null")
    assert exc.value.errno == errno.ENODEV
    with pytest.raises(UbiError) as exc:
        lib.dev_node2num("/dev/null")
    assert exc.value.errno == errno.EINVAL


def test_char_device_volume_missing(tmp_path):
    major, _ = _null_numbers()
    make_sysfs(tmp_path)
    add_device(tmp_path, 0, mtd_num=4, major=major)
    lib = Libubi(str(tmp_path))
    with pytest.raises(UbiError) as exc:
        lib.probe_node("/dev/null")
    assert exc.value.errno == errno.ENODEV
    with pytest.raises(UbiError) as exc:
        lib.vol_node2nums("/dev/null")
    assert exc.value.errno == errno.ENODEV