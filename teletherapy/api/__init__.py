"""HTTP API for the availability service."""
