"""multitab — several shells in one terminal window, one tab each."""

__version__ = "0.1.0"
