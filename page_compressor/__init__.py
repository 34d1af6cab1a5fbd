"""Page Compressor: strip heavy resources from web pages and measure the savings."""

__version__ = "0.1.0"
