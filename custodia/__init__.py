"""Custodia -- allocation and portfolio analytics for custody assets."""

__version__ = "0.1.0"
