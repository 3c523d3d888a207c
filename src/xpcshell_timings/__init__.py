"""Collect xpcshell test timings from CI resource profiles."""

__version__ = "0.1.0"
