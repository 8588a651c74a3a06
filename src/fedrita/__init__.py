"""Fedrita salon-booking dashboard backend."""

__version__ = "1.0.0"
