[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "wattmon"
version = "0.1.0"
description = "Configuration, time keeping and firmware release handling for an electric power monitor"
requires-python = ">=3.10"
keywords = ["energy", "power-monitor", "ntp", "dst", "firmware-update", "configuration"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Scientific/Engineering :: Interface Engine/Protocol Translator",
]
dependencies = [
    "pynacl",
]

[project.optional-dependencies]
test = [
    "pytest",
    "pynacl",
]

[tool.hatch.build.targets.wheel]
packages = ["wattmon"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
