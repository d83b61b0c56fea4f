"""Orgbook - administration client for a business-relationship database."""

__version__ = "0.1.0"
