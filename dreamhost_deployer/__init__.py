"""Deploy static and built websites to DreamHost over SSH."""

__version__ = '0.6.0'
