import errno

import pytest

from ubikit.layout import (
    DEV_MTD_NUM,
    INT_MAX,
    VOL_NAME,
    SysfsLayout,
    UbiError,
    read_data,
    read_major,
    read_positive_int,
    read_positive_ll,
)


def _write(tmp_path, name, content):
    path = tmp_path / name
    if isinstance(content, str):
        content = content.encode()
    path.write_bytes(content)
    return path


def test_read_positive_ll_value(tmp_path):
    path = _write(tmp_path, "n", "1234\n")
    assert read_positive_ll(path) == 1234


def test_read_positive_ll_large(tmp_path):
    path = _write(tmp_path, "n", f"{INT_MAX + 5}\n")
    assert read_positive_ll(path) == INT_MAX + 5


def test_read_positive_ll_negative(tmp_path):
    path = _write(tmp_path, "n", "-3\n")
    with pytest.raises(UbiError) as info:
        read_positive_ll(path)
    assert info.value.errno == errno.EINVAL


def test_read_positive_ll_garbage(tmp_path):
    path = _write(tmp_path, "n", "abc\n")
    with pytest.raises(UbiError) as info:
        read_positive_ll(path)
    assert info.value.errno == errno.EINVAL


def test_read_positive_ll_too_long(tmp_path):
    path = _write(tmp_path, "n", "1" * 50)
    with pytest.raises(UbiError) as info:
        read_positive_ll(path)
    assert info.value.errno == errno.EINVAL


def test_read_positive_ll_missing(tmp_path):
    with pytest.raises(UbiError) as info:
        read_positive_ll(tmp_path / "absent")
    assert info.value.errno == errno.ENOENT
    assert isinstance(info.value, OSError)


def test_read_positive_int_limit(tmp_path):
    ok = _write(tmp_path, "ok", f"{INT_MAX}\n")
    assert read_positive_int(ok) == INT_MAX
    big = _write(tmp_path, "big", f"{INT_MAX + 1}\n")
    with pytest.raises(UbiError) as info:
        read_positive_int(big)
    assert info.value.errno == errno.EINVAL


def test_read_data_returns_contents(tmp_path):
    path = _write(tmp_path, "d", "dynamic\n")
    assert read_data(path, 50) == b"dynamic\n"


def test_read_data_at_limit_rejected(tmp_path):
    path = _write(tmp_path, "d", b"x" * 8)
    with pytest.raises(UbiError) as info:
        read_data(path, 8)
    assert info.value.errno == errno.EINVAL
    assert read_data(path, 9) == b"x" * 8


def test_read_major_pair(tmp_path):
    path = _write(tmp_path, "dev", "254:0\n")
    assert read_major(path) == (254, 0)


@pytest.mark.parametrize("content", ["254\n", "a:b\n", "-1:0\n", "3:-2\n"])
def test_read_major_rejects(tmp_path, content):
    path = _write(tmp_path, "dev", content)
    with pytest.raises(UbiError) as info:
        read_major(path)
    assert info.value.errno == errno.EINVAL


def test_layout_default_paths():
    layout = SysfsLayout()
    assert layout.ctrl_dev == "/sys/class/misc/ubi_ctrl/dev"
    assert layout.sysfs_ubi == "/sys/class/ubi"
    assert layout.ubi_version == "/sys/class/ubi/version"


def test_layout_device_and_volume_paths():
    layout = SysfsLayout("/sys")
    assert layout.dev_path(DEV_MTD_NUM, 0) == "/sys/class/ubi/ubi0/mtd_num"
    assert layout.vol_path(VOL_NAME, 0, 1) == "/sys/class/ubi/ubi0_1/name"
    assert layout.dev_path("", 2) == "/sys/class/ubi/ubi2"
    assert layout.vol_path("", 2, 3) == "/sys/class/ubi/ubi2_3"


def test_layout_trailing_slash_root(tmp_path):
    root = str(tmp_path)
    with_slash = SysfsLayout(root + "/")
    without = SysfsLayout(root)
    assert with_slash.sysfs_ubi == without.sysfs_ubi
    assert with_slash.dev_path(DEV_MTD_NUM, 1) == without.dev_path(DEV_MTD_NUM, 1)
    assert "//" not in with_slash.ctrl_dev


def test_layout_paths_readable(tmp_path):
    layout = SysfsLayout(str(tmp_path))
    target = tmp_path / "class" / "ubi" / "ubi0"
    target.mkdir(parents=True)
    (target / DEV_MTD_NUM).write_text("7\n")
    assert read_positive_int(layout.dev_path(DEV_MTD_NUM, 0)) == 7