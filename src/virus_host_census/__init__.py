"""Virus/host sequence census with taxonomic name resolution."""

__version__ = "0.1.0"
