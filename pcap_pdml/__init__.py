"""
Pcap PDML module.

This module turns raw result pages into structured documents: the
conversion pipeline streams a page through the external decoder and the
PDML decoder parses its output into a recursive attribute tree.
"""

from .decoder import PdmlDecoder, parse
from .pipeline import ConversionPipeline

__all__ = ["ConversionPipeline", "PdmlDecoder", "parse"]
