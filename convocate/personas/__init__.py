"""
Convocate - Personas
Style profile extraction and the persona records built from it.
"""

from .persona import Persona
from .extractor import StyleProfileExtractor, STYLE_SCHEMA
from .repair import repair_truncated_json

__all__ = ["Persona", "StyleProfileExtractor", "STYLE_SCHEMA", "repair_truncated_json"]
