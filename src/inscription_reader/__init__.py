"""
Inscription Reader - client for the inscription transliteration service.

Photographs of an inscription are preprocessed, translated one after
another into a single session, and the merged transliteration is saved
as a text document.
"""

__version__ = "0.1.0"
