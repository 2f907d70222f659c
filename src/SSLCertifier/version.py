"""Distribution version for :mod:`SSLCertifier`."""

__version__ = "0.1.0"

__all__ = ["__version__"]
