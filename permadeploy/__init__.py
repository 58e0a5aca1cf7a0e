"""Permaweb Deploy: upload a site to content-addressed storage and point an ArNS name at it."""

__version__ = "0.3.0"
