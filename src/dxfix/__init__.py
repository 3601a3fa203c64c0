"""dxfix - diagnostic-driven source rewriting."""

__version__ = "0.1.0"
