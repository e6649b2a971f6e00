"""ACME certificate automation for API gateway SNI bindings."""

__version__ = "1.0.0"
