"""Multi-channel rental rate comparison."""

__version__ = "0.1.0"
