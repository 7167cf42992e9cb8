[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "dmjoint"
version = "0.1.0"
description = "Serial USB-to-CAN driver for DM-series joint motors with a joint-level hardware interface"
requires-python = ">=3.10"
dependencies = [
    "pyserial",
]
keywords = ["motor", "can", "serial", "robotics", "mit-control", "actuator"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Intended Audience :: Science/Research",
    "Operating System :: POSIX :: Linux",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Hardware :: Hardware Drivers",
    "Topic :: Scientific/Engineering",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["dmjoint"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
