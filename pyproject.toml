[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "x16periph"
version = "0.1.0"
description = "Cycle-level models of Commander X16 peripherals: VERA video, PSG, PCM, SPI, SD card, VIA, RTC and a WAV recorder"
requires-python = ">=3.10"
keywords = ["emulator", "commander-x16", "vera", "6522", "retro", "sd-card", "rtc"]
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
    "Topic :: System :: Emulators",
]
dependencies = []

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["x16periph"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
