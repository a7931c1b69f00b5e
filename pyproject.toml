[build-system]
requires = ["setuptools>=61.0"]
build-backend = "setuptools.build_meta"

[project]
name = "dpctool"
version = "0.1.0"
description = "Extract, rebuild and validate FUEL DPC archives, and compute the name hashes they use"
requires-python = ">=3.10"
dependencies = []
keywords = ["dpc", "archive", "fuel", "crc32", "game-assets", "modding"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Environment :: Console",
    "Intended Audience :: Developers",
    "Intended Audience :: End Users/Desktop",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Archiving",
    "Topic :: Games/Entertainment",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
dpctool-crc32 = "dpctool.crc32:main"
dpctool-fuel = "dpctool.fuel_dpc:main"

[tool.setuptools.packages.find]
include = ["dpctool*"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
