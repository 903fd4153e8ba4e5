"""HoopSpotter: outdoor basketball court discovery API."""

__version__ = "0.1.0"
