[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "spicedbop"
version = "0.1.0"
description = "Update graphs, channel data and label helpers for running SpiceDB clusters"
requires-python = ">=3.10"
keywords = ["spicedb", "kubernetes", "operator", "update-graph", "migrations", "label-selector"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: System Administrators",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Systems Administration",
    "Typing :: Typed",
]
dependencies = [
    "pyyaml>=6.0",
    "requests>=2.28",
]

[project.optional-dependencies]
test = [
    "pytest>=7.0",
    "responses>=0.23",
]

[project.scripts]
spicedbop-update-graph = "spicedbop.channels:main"

[tool.hatch.build.targets.wheel]
packages = ["spicedbop"]

[tool.pytest.ini_options]
addopts = "-ra"
testpaths = ["tests"]

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "I", "B", "UP"]

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
