[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "rocketctl"
version = "0.1.0"
description = "Flight control core for an actively stabilised rocket: control mixing, servo actuation, flight-event detection, CSV logging and a terminal status line."
requires-python = ">=3.10"
dependencies = []
keywords = [
    "rocket",
    "flight-control",
    "apogee",
    "servo",
    "control-mixing",
    "state-machine",
    "embedded",
]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Intended Audience :: Science/Research",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Software Development :: Embedded Systems",
    "Topic :: Scientific/Engineering",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["rocketctl"]

[tool.hatch.build.targets.sdist]
include = ["rocketctl", "tests", "README.md", "pyproject.toml"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
