[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "hsme"
version = "0.1.0"
description = "Tooling for a SQLite-backed memory store: decay benchmarks, CLI output and status helpers, and legacy data migration."
requires-python = ">=3.10"
dependencies = []
keywords = [
    "sqlite",
    "memory",
    "search",
    "benchmark",
    "migration",
    "knowledge-graph",
]
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
    "Topic :: Database",
    "Typing :: Typed",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["hsme"]

[tool.hatch.build.targets.sdist]
include = ["hsme", "tests", "README.md", "pyproject.toml"]

[tool.pytest.ini_options]
addopts = "-ra"
