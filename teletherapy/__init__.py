"""Teletherapy availability and slot resolution service."""

__version__ = "0.1.0"
