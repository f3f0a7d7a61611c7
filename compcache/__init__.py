"""Compilation cache — reuse build artifacts across commits that share upstream history."""

__version__ = "0.1.0"
