"""Madhubani Nikah matrimony backend."""

__version__ = "0.1.0"
