"""O2 Gateway: O2-IMS / O2-DMS adapter and translation layer."""

__version__ = "1.0.0"
