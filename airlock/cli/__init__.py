"""Airlock command-line interface."""
