"""Merge several i3bar status feeds into one stream through a shared FIFO."""

__version__ = "0.1.0"
