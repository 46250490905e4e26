[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "feedlink"
version = "0.1.0"
description = "A small polling MQTT 3.1.1 client with feed topic helpers and a sensor dashboard message codec"
requires-python = ">=3.10"
dependencies = []
keywords = ["mqtt", "iot", "publish", "subscribe", "feeds", "sensors", "dashboard"]
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
    "Topic :: Communications",
    "Topic :: Internet",
    "Topic :: Home Automation",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["feedlink"]

[tool.hatch.build.targets.sdist]
include = ["feedlink", "tests"]

[tool.pytest.ini_options]
addopts = "-ra"
