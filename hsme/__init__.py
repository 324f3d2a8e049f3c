"""Benchmarking, command-line and migration tools for a SQLite memory store."""

__version__ = "0.1.0"