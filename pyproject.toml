[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "microboot"
version = "0.1.0"
description = "Bootloader flash layout, Intel HEX parsing, peek-based check agents and YMODEM update callbacks for microcontroller firmware, runnable on a host"
requires-python = ">=3.10"
dependencies = []
keywords = ["bootloader", "firmware", "ota", "ymodem", "intel-hex", "flash", "state-machine"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Software Development :: Embedded Systems",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["microboot"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
