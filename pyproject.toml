[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "kubegres"
version = "0.1.0"
description = "Blocking-operation tracking and cluster resource state loading for a PostgreSQL cluster operator"
requires-python = ">=3.10"
dependencies = []
keywords = ["postgresql", "kubernetes", "operator", "replication", "cluster"]
classifiers = [
    "Development Status :: 3 - Alpha",
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
    "Topic :: Database",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["kubegres"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
