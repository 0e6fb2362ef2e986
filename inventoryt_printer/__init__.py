"""Custom URL scheme handler that prints inventory labels."""

__version__ = "1.0.0"
