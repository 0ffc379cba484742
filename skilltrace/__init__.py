"""Analysis job lifecycle controller for the repository skill dashboard."""

__version__ = "0.1.0"
