[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "distlab"
version = "0.2.0"
description = "Small distributed-algorithm simulations: Raft leader election, operational transformation, gossip counting and Chord routing"
requires-python = ">=3.10"
keywords = ["raft", "chord", "gossip", "crdt", "operational-transformation", "distributed-systems"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Education",
    "Intended Audience :: Developers",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Framework :: AsyncIO",
    "Topic :: System :: Distributed Computing",
]
dependencies = []

[project.optional-dependencies]
test = ["pytest", "pytest-asyncio"]

[project.scripts]
distlab-raft = "distlab.raft:main"
distlab-editor = "distlab.editor:main"
distlab-gossip = "distlab.gossip:main"
distlab-chord = "distlab.chord_system:main"

[tool.hatch.build.targets.wheel]
packages = ["distlab"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
