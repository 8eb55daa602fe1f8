"""
Convocate - Ingestion
Parsing, aggregation, thread reconstruction and sampling of chat exports.
"""

from .parsers import parse_file
from .aggregator import aggregate, select_top
from .threads import reconstruct
from .sampler import sample
from .formality import detect_formality

__all__ = ["parse_file", "aggregate", "select_top", "reconstruct", "sample", "detect_formality"]
