"""Durable background job processing with distributed locking and circuit breaking."""

__version__ = "0.1.0"

__all__ = ["__version__"]
