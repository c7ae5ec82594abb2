[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "vsesync"
version = "0.1.0"
description = "Collect PTP device, DPLL, GNSS and grandmaster data from the linuxptp daemon of a cluster node"
requires-python = ">=3.10"
dependencies = []
keywords = [
    "ptp",
    "linuxptp",
    "dpll",
    "gnss",
    "ubx",
    "pmc",
    "time synchronization",
    "kubernetes",
]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: System Administrators",
    "Intended Audience :: Telecommunications Industry",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Networking :: Time Synchronization",
    "Topic :: System :: Monitoring",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["vsesync"]

[tool.hatch.build.targets.sdist]
include = ["vsesync", "tests", "README.md"]

[tool.pytest.ini_options]
addopts = "-ra"
testpaths = ["tests"]

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP"]

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
warn_redundant_casts = true
