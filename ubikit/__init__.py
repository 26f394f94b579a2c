"""Access to Linux UBI devices and volumes through sysfs and UBI ioctls."""

__version__ = "0.1.0"
__all__ = ["control", "layout", "sysfs", "user", "utils"]