"""Logging and correlation helpers shared by the exporter."""
