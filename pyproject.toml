[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "txnbench"
version = "0.1.0"
description = "In-memory optimistic (Silo-style) transactions, TPC-C record keys and a versioned ordered index"
requires-python = ">=3.10"
keywords = ["transactions", "concurrency-control", "silo", "occ", "tpc-c", "benchmark", "index"]
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
    "Topic :: Database :: Database Engines/Servers",
    "Typing :: Typed",
]
dependencies = []

[project.optional-dependencies]
test = [
    "pytest>=7.0",
    "hypothesis>=6.0",
]

[tool.hatch.build.targets.wheel]
packages = ["txnbench"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
