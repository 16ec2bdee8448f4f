"""Annotated SQL migration parsing, migration collection, version tables and locking."""

__version__ = "0.1.0"