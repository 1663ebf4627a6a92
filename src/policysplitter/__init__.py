"""Split root policies across target clusters and aggregate leaf status back."""

__version__ = "0.1.0"
