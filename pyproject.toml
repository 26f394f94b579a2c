[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "ubikit"
version = "0.1.0"
description = "Access to Linux UBI devices and volumes through sysfs and the UBI ioctl interface"
requires-python = ">=3.10"
dependencies = []
keywords = ["ubi", "mtd", "flash", "sysfs", "ioctl", "linux"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: POSIX :: Linux",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Filesystems",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["ubikit"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
