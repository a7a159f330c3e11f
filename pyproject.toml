[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "linkcap"
version = "0.1.0"
description = "Send and receive data link layer packets, list network interfaces and work with MAC addresses"
requires-python = ">=3.10"
dependencies = [
    "psutil",
]
keywords = ["networking", "ethernet", "datalink", "packet", "mac-address", "af_packet", "bpf"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: POSIX :: Linux",
    "Operating System :: MacOS",
    "Operating System :: POSIX :: BSD",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Networking",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[project.scripts]
linkcap-interfaces = "linkcap.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["linkcap"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
