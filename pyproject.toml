[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "honk"
version = "0.1.0"
description = "Building blocks for database schema migrations: annotated SQL parsing, migration collection, version tables per dialect and advisory locking."
requires-python = ">=3.10"
dependencies = []
keywords = ["database", "migrations", "sql", "schema", "postgres", "mysql", "sqlite"]
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
    "Topic :: Software Development :: Libraries :: Python Modules",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["honk"]

[tool.pytest.ini_options]
addopts = "-ra"
