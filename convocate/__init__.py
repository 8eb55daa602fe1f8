"""
Convocate - Chat Persona Practice Service
Turns chat exports into style-matched personas you can practice talking to.
"""

__version__ = "0.1.0"
