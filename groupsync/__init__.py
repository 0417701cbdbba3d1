"""Keeps a resource group's direct membership in line with its nested role groups."""

__version__ = "1.1.0"
