"""pacdump: dump pacman package databases as enriched JSON records."""

__version__ = "0.3.2"
